"""账单管理页面"""
import streamlit as st
import pandas as pd
import datetime
from models import SqlGateway, BillStatus
from services.auth import MANAGERS
from services.billing import BillingService
from utils.exceptions import DormException
from utils.helpers import format_money, normalize_month


def page_billing(actor):
    st.title("📝 账单管理")
    if actor.role not in MANAGERS:
        st.error("⛔️ 权限不足")
        return
    gw = SqlGateway()
    t1, t2, t3 = st.tabs(["⚡ 月度出账", "💳 缴费登记", "⏰ 逾期处理"])

    with t1:
        c1, c2 = st.columns(2)
        b_period = c1.text_input("账期(YYYY-MM)", value=datetime.date.today().strftime("%Y-%m"))
        try:
            month = normalize_month(b_period)
        except DormException as e:
            st.error(str(e))
            return
        due = c2.date_input("缴费截止日", BillingService.default_due_date(month))
        pending = BillingService.pending_rooms(gw, month)
        if not pending:
            st.info("本账期所有在住房间均已出账")
        else:
            with st.form("batch_billing"):
                readings = {}
                for o in pending:
                    readings[o.room['id']] = st.number_input(
                        f"房间 {o.room['room_number']} 本月电表（上次 {o.room['latest_meter_reading']}）",
                        min_value=0.0, value=float(o.room['latest_meter_reading'] or 0.0),
                        key=f"meter_{o.room['id']}"
                    )
                if st.form_submit_button("🚀 全量生成"):
                    try:
                        report = BillingService.generate_monthly_bills(gw, actor, month, readings, due_date=due)
                    except DormException as e:
                        st.error(f"[{e.code}] {e}")
                    else:
                        (st.warning if report.skipped else st.success)(report.summary())
                        for s in report.skipped:
                            st.caption(f"{s.room_number}: [{s.reason}] {s.message}")

    with t2:
        unpaid = gw.select('billing', {'status': [BillStatus.PENDING.value, BillStatus.OVERDUE.value]},
                           order='billing_month')
        rooms = {r['id']: r['room_number'] for r in gw.select('rooms')}
        if not unpaid:
            st.info("暂无待缴账单")
        else:
            st.dataframe(pd.DataFrame([{
                "房号": rooms.get(b['room_id']), "账期": b['billing_month'].strftime("%Y-%m"),
                "租金": b['room_rent'], "水费": b['water_cost'], "电费": b['electricity_cost'],
                "合计": format_money(b['sum']), "状态": b['status'], "截止日": b['due_date']
            } for b in unpaid]), use_container_width=True)
            sel = st.selectbox("选择账单", unpaid, format_func=lambda b: (
                f"{rooms.get(b['room_id'])} | {b['billing_month']:%Y-%m} | {format_money(b['sum'])}"))
            if st.button("登记已缴"):
                try:
                    BillingService.mark_bill_paid(gw, actor, sel['id'])
                    st.success("已登记缴费")
                    st.rerun()
                except DormException as e:
                    st.error(f"[{e.code}] {e}")

    with t3:
        as_of = st.date_input("截止日期", datetime.date.today())
        if st.button("标记逾期"):
            try:
                count = BillingService.mark_overdue(gw, actor, as_of)
                st.success(f"{count} 张账单转为逾期")
            except DormException as e:
                st.error(f"[{e.code}] {e}")
