from models.property import Property, PropertyCreate, PropertyStatus, PropertyRequest, ApproveRequest
from models.user import User, Card, UserRole, RegisterRequest, LoginRequest, SaveCardRequest
from models.lease import Lease, PaymentEntry, EntryStatus, LeaseStatus, LeasePayRequest
from models.payment import Payment, PaymentStatus, MockPaymentRequest
from models.energy import EnergyReading, EnergySummary
