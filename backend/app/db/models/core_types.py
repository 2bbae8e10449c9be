import enum

class Role(str, enum.Enum):
    admin = "ADMIN"
    storekeeper = "MAGASINIER"
    employee = "EMPLOYE"

# Both lifecycles share member names but stay separate types so an order
# status can never be written into a request and vice versa.
class OrderStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"
    prepared = "PREPARED"
    picked_up = "PICKEDUP"

class RequestStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"
    prepared = "PREPARED"
    picked_up = "PICKEDUP"
