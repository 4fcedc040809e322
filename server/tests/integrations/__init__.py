"""
Integration test modules

Tests for external system integrations including:
- DocuSign JWT grant authentication
- Envelope construction and the eSignature REST client
- Connect webhook HMAC verification
- S3 object storage
"""
