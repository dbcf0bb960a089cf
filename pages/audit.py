"""审计日志查询页面"""
import streamlit as st
import pandas as pd
import datetime
import json
from models import SqlGateway
from services.audit import AuditService
from services.auth import ROLE_ADMIN

RANGES = {"最近1天": 1, "最近7天": 7, "最近30天": 30, "全部": None}


def page_audit_query(actor):
    """审计日志查询工作台"""
    st.title("🔎 审计日志查询")
    if actor.role != ROLE_ADMIN:
        st.error("⛔️ 权限不足")
        return

    gw = SqlGateway()
    recent = AuditService.query(gw)
    col1, col2, col3 = st.columns(3)
    selected_user = col1.selectbox("操作用户", ['全部'] + sorted({l['user'] for l in recent if l['user']}))
    selected_action = col2.selectbox("操作类型", ['全部'] + sorted({l['action'] for l in recent if l['action']}))
    days = RANGES[col3.selectbox("时间范围", list(RANGES.keys()))]

    logs = AuditService.query(
        gw,
        user=None if selected_user == '全部' else selected_user,
        action=None if selected_action == '全部' else selected_action,
        since=datetime.datetime.now() - datetime.timedelta(days=days) if days else None
    )
    if not logs:
        st.info("未找到符合条件的日志")
        return

    st.markdown(f"### 📋 查询结果 (共 {len(logs)} 条)")
    st.dataframe(pd.DataFrame([{
        "时间": l['created_at'].strftime("%Y-%m-%d %H:%M:%S"), "用户": l['user'], "操作": l['action'],
        "目标": l['target'], "详情": l['details'][:50] + "..." if len(l['details'] or '') > 50 else l['details'],
        "trace_id": l['trace_id']
    } for l in logs]), use_container_width=True, height=400)

    trace_id = st.text_input("输入 trace_id 查看详情")
    if trace_id:
        log = gw.first('audit_logs', {'trace_id': trace_id.strip()})
        if log is None:
            st.warning("未找到相关日志")
            return
        if log['details'] and log['details'].startswith('{'):
            st.json(json.loads(log['details']))
        else:
            st.text(log['details'])
        st.caption(f"WORM hash: {log['worm_hash']}")
