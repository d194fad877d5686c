"""
HTTP routers for the order-to-kitchen API
"""
