import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database import Base


class InventoryRecordModel(Base):
    __tablename__ = "inventory_records"
    __table_args__ = (
        # one live record per (stage, owner, item)
        Index(
            "ux_inventory_records_live_key",
            "stage",
            "owner_id",
            "item_ref",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # 'purchase' | 'kacha' | 'draw' | 'ready_copper' | 'pvc_purchase' | 'production'
    stage = Column(Text, nullable=False, index=True)
    owner_id = Column(Text, nullable=False, index=True)
    item_ref = Column(Text, nullable=False)

    quantity = Column(Numeric, nullable=False, default=0)
    total_amount = Column(Numeric, nullable=False, default=0)

    # 'active' | 'completed' | 'cancelled'
    status = Column(Text, nullable=False, default="active", index=True)

    source_record_id = Column(
        UUID(as_uuid=True),
        ForeignKey("inventory_records.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    history = relationship(
        "InventoryHistoryModel",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="InventoryHistoryModel.seq",
    )
