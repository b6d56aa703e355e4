from decimal import Decimal

from sqlmodel import Field, SQLModel


class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    title: str
    description: str | None = None
    duration: int  # minutes; sizes every slot booked for this service
    price: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    is_active: bool = Field(default=True, index=True)
