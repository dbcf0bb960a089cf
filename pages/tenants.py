"""租户入住管理页面"""
import streamlit as st
import pandas as pd
from models import SqlGateway, TenantState, RoomStatus
from services.auth import MANAGERS
from services.occupancy import OccupancyService
from utils.exceptions import DormException


def _tenant_label(t):
    return f"{t['first_name']} {t['last_name'] or ''} | 房间 {t['room_number'] or '-'}"


def page_tenants(actor):
    st.title("🛏️ 租户管理")
    if actor.role not in MANAGERS:
        st.error("⛔️ 权限不足")
        return
    gw = SqlGateway()
    tenants = gw.select('tenants', {'action': int(TenantState.ACTIVE)}, order='first_name')
    overview = OccupancyService.room_occupancy(gw)

    t1, t2, t3, t4 = st.tabs(["📋 租户列表", "🔑 分配房间", "👥 合住人", "🚪 退房"])

    with t1:
        st.dataframe(pd.DataFrame([{
            "姓名": f"{t['first_name']} {t['last_name'] or ''}", "电话": t['phone'],
            "房号": t['room_number'], "身份": t['residents']
        } for t in tenants]), use_container_width=True)

        with st.expander("➕ 新增租户"):
            with st.form("add_tenant"):
                c1, c2 = st.columns(2)
                first = c1.text_input("名")
                last = c2.text_input("姓")
                phone = c1.text_input("电话")
                email = c2.text_input("邮箱")
                if st.form_submit_button("保存"):
                    try:
                        OccupancyService.register_tenant(gw, actor, {
                            'first_name': first, 'last_name': last, 'phone': phone, 'email': email
                        })
                        st.success("租户已登记")
                        st.rerun()
                    except DormException as e:
                        st.error(f"[{e.code}] {e}")

    with t2:
        free = [o.room for o in overview
                if o.occupant_count == 0 and o.room['status'] != RoomStatus.MAINTENANCE]
        if not tenants or not free:
            st.info("暂无可分配的租户或空房")
        else:
            with st.form("assign_room"):
                tenant = st.selectbox("租户", tenants, format_func=_tenant_label)
                room = st.selectbox("空房", free, format_func=lambda r: f"{r['room_number']} (楼层 {r['floor']})")
                if st.form_submit_button("分配"):
                    try:
                        OccupancyService.assign_tenant(gw, actor, tenant['id'], room['id'])
                        st.success(f"{tenant['first_name']} 已入住 {room['room_number']}")
                        st.rerun()
                    except DormException as e:
                        st.error(f"[{e.code}] {e}")

    with t3:
        rooms = [o.room for o in overview if o.occupants and not o.is_full]
        if not rooms:
            st.info("暂无可加入合住人的房间")
        else:
            with st.form("add_co_occupant"):
                room = st.selectbox("房间", rooms, format_func=lambda r: r['room_number'])
                first = st.text_input("名")
                last = st.text_input("姓")
                phone = st.text_input("电话")
                if st.form_submit_button("添加合住人"):
                    try:
                        OccupancyService.add_co_occupant(gw, actor, room['id'], {
                            'first_name': first, 'last_name': last, 'phone': phone
                        })
                        st.success("合住人已添加")
                        st.rerun()
                    except DormException as e:
                        st.error(f"[{e.code}] {e}")

    with t4:
        housed = [t for t in tenants if t['room_id']]
        if not housed:
            st.info("暂无在住租户")
        else:
            tenant = st.selectbox("租户", housed, format_func=_tenant_label, key="vacate_tenant")
            c1, c2 = st.columns(2)
            if c1.button("整户退房"):
                try:
                    ids = OccupancyService.vacate_tenant(gw, actor, tenant['id'])
                    st.success(f"已退房 {len(ids)} 人")
                    st.rerun()
                except DormException as e:
                    st.error(f"[{e.code}] {e}")
            if c2.button("仅移除合住人"):
                try:
                    ids = OccupancyService.remove_co_occupants(gw, actor, tenant['id'])
                    st.success(f"已移除合住人 {len(ids)} 人")
                    st.rerun()
                except DormException as e:
                    st.error(f"[{e.code}] {e}")
