"""房间管理页面"""
import streamlit as st
import pandas as pd
from models import SqlGateway
from services.auth import MANAGERS, ROLE_ADMIN
from services.occupancy import OccupancyService
from services.price_sync import RoomPriceSyncService
from services.settings import SettingsService
from utils.exceptions import DormException
from utils.helpers import format_money


def page_rooms(actor):
    st.title("🏢 房间管理")
    if actor.role not in MANAGERS:
        st.error("⛔️ 权限不足")
        return
    gw = SqlGateway()
    t1, t2, t3 = st.tabs(["🔍 入住概况", "➕ 新增房间", "💱 租金同步"])

    with t1:
        overview = OccupancyService.room_occupancy(gw)
        st.dataframe(pd.DataFrame([{
            "房号": o.room['room_number'], "楼层": o.room['floor'], "状态": o.room['status'],
            "入住": f"{o.occupant_count}/{o.capacity}", "租金": format_money(o.room['price']),
            "电表": o.room['latest_meter_reading'],
            "住户": "、".join(t['first_name'] for t in o.occupants)
        } for o in overview]), use_container_width=True)

        rooms = {o.room['room_number']: o.room for o in overview}
        if rooms:
            c1, c2 = st.columns(2)
            sel = c1.selectbox("选择房间", list(rooms.keys()))
            enabled = c2.radio("维修状态", ["转为维修", "结束维修"]) == "转为维修"
            if st.button("更新状态"):
                try:
                    OccupancyService.set_maintenance(gw, actor, rooms[sel]['id'], enabled)
                    st.success("状态已更新")
                    st.rerun()
                except DormException as e:
                    st.error(f"[{e.code}] {e}")

    with t2:
        with st.form("add_room"):
            no = st.text_input("房号", placeholder="必填")
            floor = st.number_input("楼层", min_value=1, value=1)
            capacity = st.number_input("容量", min_value=2, value=2)
            room_type = st.text_input("房型", value="Standard Double")
            if st.form_submit_button("✅ 添加", use_container_width=True):
                try:
                    settings = SettingsService.get_settings(gw)
                    room = OccupancyService.register_room(gw, actor, {
                        'room_number': no, 'floor': floor, 'capacity': capacity, 'room_type': room_type
                    }, settings)
                    st.success(f"房间 {room['room_number']} 已添加")
                except DormException as e:
                    st.error(f"[{e.code}] {e}")

    with t3:
        check = SettingsService.validate_settings(gw)
        for issue, hint in zip(check.issues, check.recommendations):
            st.warning(f"{issue}：{hint}")
        try:
            status = RoomPriceSyncService.check_sync(gw)
        except DormException as e:
            st.error(f"[{e.code}] {e}")
            return
        st.metric("系统月租", format_money(status.system_rate))
        if status.is_synced:
            st.success("所有房间租金已与系统设置一致")
        else:
            st.warning(f"{len(status.mismatched_rooms)} 间房间租金不一致")
            st.dataframe(pd.DataFrame([{"房号": m.room_number, "当前租金": m.current_price}
                                       for m in status.mismatched_rooms]), use_container_width=True)
            if actor.role == ROLE_ADMIN and st.button("🔄 全部同步"):
                result = RoomPriceSyncService.sync_all(gw, actor)
                if result.success:
                    st.success(result.message)
                    st.rerun()
                else:
                    st.error(f"{result.message}: {'; '.join(result.errors)}")
