"""Alert notification model (low-stock alerts)."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class AlertNotification(Base):
    """Owner-facing alert row, picked up by the notification collaborator."""

    __tablename__ = 'alert_notification'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False, index=True)
    table_number = Column(String(20), nullable=True)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<AlertNotification(id={self.id}, status='{self.status}', message='{self.message}')>"
