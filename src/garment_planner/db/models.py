# src/garment_planner/db/models.py
import datetime as dt

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from . import Base


class ProductionLineRow(Base):
    __tablename__ = "production_lines"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)


class HolidayRow(Base):
    __tablename__ = "holidays"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, index=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)


class RampUpPlanRow(Base):
    __tablename__ = "ramp_up_plans"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # [{"day": 1, "efficiency": 50.0}, ...]
    efficiencies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    final_efficiency: Mapped[float] = mapped_column(Float, nullable=False)


class OrderRow(Base):
    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    po_number: Mapped[str] = mapped_column(String, index=True, nullable=False)
    style_id: Mapped[str | None] = mapped_column(String, nullable=True)
    order_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    smv: Mapped[float] = mapped_column(Float, nullable=False)
    mo_count: Mapped[int] = mapped_column(Integer, nullable=False)
    cut_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    issue_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending|scheduled|in_progress|completed
    plan_start_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    plan_end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    assigned_line_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("production_lines.id"), index=True, nullable=True
    )
    # {"YYYY-MM-DD": qty}
    actual_production: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    base_po_number: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    split_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())


__all__ = ["ProductionLineRow", "HolidayRow", "RampUpPlanRow", "OrderRow"]
