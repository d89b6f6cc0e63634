from datetime import date
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =========================
# SALES
# =========================
class SaleResponse(BaseModel):
    id: int
    date: date
    actualsales: float

    model_config = ConfigDict(from_attributes=True)


class ChartPoint(BaseModel):
    date: date
    actualsales: float
    predictedsales: Optional[int] = Field(
        default=None,
        description="Placeholder: a random 75-125% of actual sales, not a forecast.",
    )


class MonthlySales(BaseModel):
    year: int
    month: int
    month_name: str
    total_sales: float


# =========================
# FORECAST EVENTS
# =========================
class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    iterations: int
    total_iterations: int = Field(serialization_alias="totalIterations")
    progress: int
    error: Optional[float] = None


class ValidationEvent(BaseModel):
    type: Literal["validation"] = "validation"
    mse: str
    mape: str


class Prediction(BaseModel):
    year: int
    month: int
    month_name: str
    predicted_sales: int


class ModelInfo(BaseModel):
    type: str
    training_data_points: int
    iterations: int
    iterations_run: int
    training_error: Optional[float] = None


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    predictions: List[Prediction]
    model_info: ModelInfo


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


ForecastEvent = Annotated[
    Union[ProgressEvent, ValidationEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]
