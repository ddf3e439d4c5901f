from app.services.email.transport import EmailTransport, SendOutcome, get_transport

__all__ = ["EmailTransport", "SendOutcome", "get_transport"]
