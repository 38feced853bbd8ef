"""
Billing Kernel - document lifecycle authorization and transition engine

Client-side rules for an e-invoicing console:
- Role hierarchy (Admin > Manager > Clerk)
- Invoice, quote and credit note status machines
- Pure permission engine over (role, status)
- Bulk selection validation
- DGI clearance domain types
"""

__version__ = "0.1.0"
