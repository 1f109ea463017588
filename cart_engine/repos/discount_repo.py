# cart_engine/repos/discount_repo.py
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cart_engine.data.models.discount_code import DiscountCodeModel


class DiscountRepo:
    def __init__(self, db: Session):
        self.db = db

    def find_by_code(self, code: str) -> DiscountCodeModel | None:
        #dopasowanie bez wzgledu na wielkosc liter, spacje na brzegach kodu sa ignorowane
        normalized = code.strip().upper()
        if not normalized:
            return None
        stmt = select(DiscountCodeModel).where(func.upper(DiscountCodeModel.code) == normalized)
        return self.db.execute(stmt).scalars().first()
