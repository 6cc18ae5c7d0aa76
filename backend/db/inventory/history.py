import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Identity, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from ..database import Base


class InventoryHistoryModel(Base):
    __tablename__ = "inventory_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # insertion order; action_date can tie inside one transfer
    seq = Column(BigInteger, Identity(), nullable=False, index=True)

    record_id = Column(
        UUID(as_uuid=True),
        ForeignKey("inventory_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 'created' | 'added' | 'removed' | 'returned'
    action = Column(Text, nullable=False)
    quantity = Column(Numeric, nullable=False)
    amount = Column(Numeric, nullable=False, default=0)
    previous_quantity = Column(Numeric, nullable=False)
    new_quantity = Column(Numeric, nullable=False)

    action_date = Column(DateTime(timezone=True), nullable=False, index=True)
    action_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    counterpart_record_id = Column(UUID(as_uuid=True), nullable=True)

    record = relationship("InventoryRecordModel", back_populates="history")
