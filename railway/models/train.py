"""
Train and seat inventory models for the railway booking application.

A train owns its seats; seat availability is only changed through the
seat inventory service, which bumps ``version`` on every write.
"""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict

from .enums import TrainClass, SeatType, TrainType, TrainStatus


class SeatModel(BaseModel):
    """
    Individual seat on a train.

    Seat numbers are unique within a train (e.g. 'A01', 'S3-42').
    """
    model_config = ConfigDict(from_attributes=True)

    number: str = Field(..., min_length=1, description="Seat number, unique within the train")
    train_class: TrainClass = Field(..., description="Travel class of the seat")
    seat_type: SeatType = Field(..., description="Window, aisle or middle")
    is_available: bool = Field(default=True, description="False while held by a booking")


class StationModel(BaseModel):
    """Station name and code."""
    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., description="Station name")
    code: str = Field(..., max_length=8, description="Station code (e.g., 'NDLS')")


class ScheduleStopModel(BaseModel):
    """
    One stop on a train's route.

    ``distance`` is cumulative from the origin station.
    """
    model_config = ConfigDict(from_attributes=True)

    station: StationModel
    arrival_time: str = Field(..., description="Arrival time (HH:MM)")
    departure_time: str = Field(..., description="Departure time (HH:MM)")
    distance: float = Field(..., ge=0, description="Distance from origin")


class TrainModel(BaseModel):
    """
    Complete train document including its seat inventory.

    This is the unit of contention for seat reservations: every reserve or
    release rewrites the whole document under the train's inventory lock.
    """
    model_config = ConfigDict(from_attributes=True)

    train_id: str = Field(..., description="Train identifier")
    number: str = Field(..., description="Train number, unique")
    name: str = Field(..., description="Train name")
    train_type: TrainType = Field(default=TrainType.EXPRESS, description="Service category")
    source: StationModel
    destination: StationModel
    schedule: List[ScheduleStopModel] = Field(default_factory=list, description="Ordered stops")
    classes: List[TrainClass] = Field(default_factory=list, description="Classes offered")
    fare: Dict[TrainClass, float] = Field(default_factory=dict, description="Base fare per class")
    status: TrainStatus = Field(default=TrainStatus.ACTIVE, description="Operational status")
    seats: List[SeatModel] = Field(default_factory=list, description="Ordered seat inventory")
    version: int = Field(default=0, ge=0, description="Inventory write counter")
    last_updated: datetime = Field(default_factory=datetime.now, description="Last inventory update")

    @property
    def total_distance(self) -> float:
        """Distance from origin to the final stop."""
        if not self.schedule:
            return 0.0
        return max(stop.distance for stop in self.schedule)

    def seat(self, number: str) -> Optional[SeatModel]:
        for seat in self.seats:
            if seat.number == number:
                return seat
        return None

    def seats_in_class(self, train_class: TrainClass) -> List[SeatModel]:
        return [seat for seat in self.seats if seat.train_class == train_class]

    def available_seats(self, train_class: TrainClass) -> List[SeatModel]:
        return [seat for seat in self.seats_in_class(train_class) if seat.is_available]
