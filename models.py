# models.py
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from errors import ConfigError

MIN_UNITS = 1
MAX_UNITS = 50


class BloodGroup(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class BloodProduct(str, Enum):
    WHOLE_BLOOD = "Whole Blood"
    PLASMA = "Plasma"
    PLATELETS = "Platelets"
    PACKED_RBC = "Packed RBC"
    FRESH_FROZEN_PLASMA = "Fresh Frozen Plasma"


class Urgency(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RequestStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    PARTIAL = "partial"

    @property
    def is_terminal(self) -> bool:
        return self not in (RequestStatus.PENDING, RequestStatus.SENT)


# possible bank replies once a request has been accepted
RESPONSE_OUTCOMES = (RequestStatus.AVAILABLE, RequestStatus.UNAVAILABLE, RequestStatus.PARTIAL)


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ConfigError(f"Unknown {field}: {value!r}", details={field: str(value)}) from e


@dataclass(frozen=True)
class RequestConfig:
    """
    Operator-edited request parameters. Edits produce a new value through
    with_changes(); the current value is handed to every dispatch.
    """
    blood_group: BloodGroup = BloodGroup.A_POS
    products: Tuple[BloodProduct, ...] = (BloodProduct.WHOLE_BLOOD,)
    urgency: Urgency = Urgency.HIGH
    units_needed: int = 1

    def __post_init__(self):
        object.__setattr__(self, "blood_group", _coerce(BloodGroup, self.blood_group, "blood_group"))
        object.__setattr__(self, "urgency", _coerce(Urgency, self.urgency, "urgency"))
        object.__setattr__(self, "products",
                           tuple(_coerce(BloodProduct, p, "product") for p in self.products))
        if isinstance(self.units_needed, bool) or not isinstance(self.units_needed, int):
            raise ConfigError("units_needed must be an integer", details={"units_needed": str(self.units_needed)})
        if not MIN_UNITS <= self.units_needed <= MAX_UNITS:
            raise ConfigError(f"units_needed must be between {MIN_UNITS} and {MAX_UNITS}",
                              details={"units_needed": self.units_needed})

    def with_changes(self, **changes) -> "RequestConfig":
        return replace(self, **changes)

    def toggle_product(self, product: Union[BloodProduct, str]) -> "RequestConfig":
        # keeps selection order, new picks go last
        product = _coerce(BloodProduct, product, "product")
        if product in self.products:
            products = tuple(p for p in self.products if p != product)
        else:
            products = self.products + (product,)
        return replace(self, products=products)

    def message(self) -> str:
        products = ", ".join(p.value for p in self.products)
        return (f"Urgent blood request: {self.units_needed} units of {self.blood_group.value} "
                f"({products}) - Priority: {self.urgency.value}")

    def to_payload(self, bank_id: str) -> dict:
        return {
            "bank_id": bank_id,
            "blood_group": self.blood_group.value,
            "products": [p.value for p in self.products],
            "units_needed": self.units_needed,
            "urgency": self.urgency.value,
            "message": self.message(),
        }


DEFAULT_LATITUDE = 12.9716
DEFAULT_LONGITUDE = 77.5946
DEFAULT_CITY = "City"
DEFAULT_PHONE = "Phone not available"
DEFAULT_BLOOD_TYPES = "A+,B+,O+,AB+"


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Recipient:
    key: str
    name: str
    phone: str = DEFAULT_PHONE
    city: str = DEFAULT_CITY
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    distance_km: Optional[float] = None
    blood_types_available: str = DEFAULT_BLOOD_TYPES

    @property
    def distance_label(self) -> str:
        if self.distance_km is None:
            return "N/A"
        return f"{self.distance_km:g} km"

    @staticmethod
    def resolve_key(item: dict, index: int) -> str:
        for field in ("bank_id", "id"):
            value = item.get(field)
            if value is not None and value != "":
                return str(value)
        return str(index)

    @classmethod
    def from_api(cls, item: dict, index: int) -> "Recipient":
        distance = item.get("distance_km", item.get("distance"))
        lat = _to_float(item.get("lat", item.get("latitude")))
        lon = _to_float(item.get("lon", item.get("longitude")))
        return cls(
            key=cls.resolve_key(item, index),
            name=item.get("name") or f"Blood Bank {index + 1}",
            phone=item.get("phone") or DEFAULT_PHONE,
            city=item.get("city") or DEFAULT_CITY,
            latitude=DEFAULT_LATITUDE if lat is None else lat,
            longitude=DEFAULT_LONGITUDE if lon is None else lon,
            distance_km=_to_float(distance),
            blood_types_available=item.get("blood_types_available") or DEFAULT_BLOOD_TYPES,
        )

    @classmethod
    def from_row(cls, values: Sequence[str], index: int) -> "Recipient":
        """
        Build a recipient from one fallback CSV row, substituting defaults for
        empty or unparseable cells.
        """
        def cell(i: int) -> str:
            return values[i].strip() if len(values) > i else ""

        lat = _to_float(cell(4))
        lon = _to_float(cell(5))
        # unquoted blood type lists spill into extra columns
        blood_types = ",".join(v.strip() for v in values[7:] if v.strip())
        return cls(
            key=cell(0) or f"bank_{index}",
            name=cell(1) or f"Blood Bank {index + 1}",
            phone=cell(2) or DEFAULT_PHONE,
            city=cell(3) or DEFAULT_CITY,
            latitude=DEFAULT_LATITUDE if lat is None else lat,
            longitude=DEFAULT_LONGITUDE if lon is None else lon,
            distance_km=_to_float(cell(6)),
            blood_types_available=blood_types or DEFAULT_BLOOD_TYPES,
        )
