"""
FleetPass - HTTP Gateway

Cross-cutting request handling: rate limiting, request IDs and security
headers.
"""
