# Business Services
from pms.services.audit_service import AuditService
from pms.services.availability_service import AvailabilityService
from pms.services.rate_plan_service import RatePlanService
from pms.services.reservation_service import ReservationService
from pms.services.invoice_service import InvoiceService
from pms.services.room_service import RoomService
from pms.services.guest_service import GuestService
from pms.services.operations import BookingOperations

__all__ = [
    'AuditService', 'AvailabilityService', 'RatePlanService',
    'ReservationService', 'InvoiceService', 'RoomService',
    'GuestService', 'BookingOperations'
]
