"""
Order Service — order creation, status transitions and payment confirmation.
"""
