"""
Integration modules for the leasing e-signature service

Contains clients for external systems:
- E-signature provider (DocuSign)
- Object storage (S3)
"""
