# API Routers
from pms.routers import reservations, invoices, rate_plans, rooms, guests, audit_logs

__all__ = ['reservations', 'invoices', 'rate_plans', 'rooms', 'guests', 'audit_logs']
