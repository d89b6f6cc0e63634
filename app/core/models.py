from sqlalchemy import Column, Date, Integer, Numeric

from app.core.database import Base


# =========================
# Sale
# =========================
class Sale(Base):
    """
    One recorded sales figure for a day.

    Rows are written by whatever loads the sales data; this service only reads
    them. Several rows may share a date, so every aggregate sums them.
    """

    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)

    date = Column(Date, nullable=False, index=True)
    actualsales = Column(Numeric(12, 2), nullable=False)
