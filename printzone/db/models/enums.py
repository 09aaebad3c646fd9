import enum

class ZoneType(str, enum.Enum):
    image = "image"
    text = "text"

class UserRole(str, enum.Enum):
    operator = "operator"
    customer = "customer"
