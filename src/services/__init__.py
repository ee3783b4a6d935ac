"""Business logic used by handlers.

Ledger backends are imported lazily by ``scan_service.get_scan_service`` so
importing a service does not open database pools or AWS clients.
"""
