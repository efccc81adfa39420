"""
Customer Module - Address Models
==================================
Saved delivery addresses. Orders copy an address into their own snapshot
columns at checkout; they never reference this table afterwards.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from config.database import Base


class CustomerAddress(Base):
    __tablename__ = "customer_addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    address_type = Column(String, default="home", nullable=False)   # home / work / other

    full_name = Column(String, nullable=False)
    phone = Column(String(20), nullable=False)
    address_line1 = Column(String, nullable=False)
    address_line2 = Column(String, nullable=True)
    landmark = Column(String, nullable=True)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    pincode = Column(String(12), nullable=False)
    country = Column(String, default="India", nullable=False)

    is_default = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def snapshot(self) -> dict:
        """Plain copy of the delivery fields, detached from this row."""
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "landmark": self.landmark,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
        }
