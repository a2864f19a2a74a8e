# cactilia/models/shipping_rule.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cactilia.db.base import Base


class ShippingRuleRow(Base):
    """
    运费规则（= Zone）。

    postal_codes：精确邮编 / "start-end" 区间 / "estado_XXX" / "nacional"
    rule_ids：该 zone 聚合的具名规则 id（间接层）
    """

    __tablename__ = "shipping_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    zone_name: Mapped[str] = mapped_column(String(128), nullable=False, default="", server_default="")
    is_national: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    coverage_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    postal_codes: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    state_prefixes: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    rule_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    free_shipping: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    free_shipping_min_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    base_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    per_kg_extra_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")

    max_weight_per_package: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_items_per_package: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    messaging_options: Mapped[List["MessagingOptionRow"]] = relationship(
        back_populates="rule",
        lazy="selectin",
        order_by="MessagingOptionRow.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ShippingRuleRow id={self.id!r} zone_name={self.zone_name!r} active={self.active}>"


class MessagingOptionRow(Base):
    __tablename__ = "shipping_rule_messaging_options"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("shipping_rules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    option_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    base_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    per_kg_extra_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    max_weight_per_package: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_items_per_package: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    min_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_delivery_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    extra_item_base_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    extra_item_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")

    rule: Mapped[ShippingRuleRow] = relationship(back_populates="messaging_options")

    def __repr__(self) -> str:
        return f"<MessagingOptionRow id={self.id} rule_id={self.rule_id!r} name={self.name!r}>"
