"""
Leasing e-signature service.

Dispatches lease documents to DocuSign for signature, authenticates with the
JWT bearer grant, and applies verified Connect webhook events to lease records.
"""

__version__ = "0.1.0"
