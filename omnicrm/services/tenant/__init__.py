from .credential_service import CredentialService, PROVIDERS

__all__ = ['CredentialService', 'PROVIDERS']
