"""运营驾驶舱页面"""
import streamlit as st
import datetime
from models import SqlGateway, BillStatus
from services.occupancy import OccupancyService
from utils.helpers import to_decimal, format_money, normalize_month


def page_dashboard(actor):
    st.title("📊 运营驾驶舱")
    gw = SqlGateway()
    overview = OccupancyService.room_occupancy(gw)
    month = normalize_month(datetime.date.today())
    bills = gw.select('billing', {'billing_month': month})

    k1, k2, k3, k4 = st.columns(4)
    k1.metric("🏠 房间总数", len(overview))
    k2.metric("🛏️ 在住人数", sum(o.occupant_count for o in overview))
    k3.metric("🔧 维修中", sum(1 for o in overview if o.room['status'] == 'maintenance'))
    k4.metric("🚨 本月未缴", format_money(sum(
        (to_decimal(b['sum']) for b in bills if b['status'] != BillStatus.PAID.value), to_decimal(0)
    )))
