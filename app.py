"""宿舍管理系统 - 主入口"""
import streamlit as st
import os

import sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import config
from models import init_db
from services.auth import Actor, ROLES
from pages import page_dashboard, page_rooms, page_tenants, page_billing, page_audit_query

# 页面配置
st.set_page_config(page_title=config.APP_NAME, layout="wide", page_icon="🏠")

# 初始化数据库表
init_db()

# 页面映射
PAGES = {
    "🏠 运营驾驶舱": page_dashboard,
    "🛏️ 租户管理": page_tenants,
    "🏢 房间管理": page_rooms,
    "📝 账单管理": page_billing,
    "🔎 审计日志": page_audit_query,
}


def current_actor() -> Actor:
    """身份由外部认证提供，此处仅从侧边栏选择"""
    name = st.sidebar.text_input("操作员", value=st.session_state.get('username', 'admin'))
    role = st.sidebar.selectbox("角色", ROLES)
    st.session_state.username = name
    return Actor(name, role)


def main():
    actor = current_actor()
    st.sidebar.markdown(f"👤 **{actor.name}** ({actor.role})")
    st.sidebar.divider()

    for p in PAGES:
        if st.sidebar.button(p, key=f"nav_{p}", use_container_width=True):
            st.session_state.current_page = p
    page = st.session_state.get('current_page', "🏠 运营驾驶舱")

    # 渲染页面
    PAGES[page](actor)


if __name__ == '__main__':
    main()
