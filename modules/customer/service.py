"""
Customer Module - Address Store
=================================
Narrow lookup used by checkout. Address CRUD lives in the account service.
"""

from sqlalchemy.orm import Session

from common.exceptions import AddressNotFound
from modules.customer.models import CustomerAddress


class AddressService:

    def get_address(self, db: Session, user_id: int, address_id: int) -> CustomerAddress:
        """Return the user's address or raise AddressNotFound (missing or owned by someone else)."""
        address = db.query(CustomerAddress).filter(
            CustomerAddress.id == address_id,
            CustomerAddress.user_id == user_id,
        ).first()
        if not address:
            raise AddressNotFound(address_id)
        return address

    def create(self, db: Session, user_id: int, data: dict) -> CustomerAddress:
        address = CustomerAddress(user_id=user_id, **data)
        db.add(address)
        db.flush()
        return address


# Singleton
address_service = AddressService()
