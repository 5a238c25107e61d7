# eureka_errors.py


class EurekaError(Exception):
    """Basisklasse für alle Fehler des Eureka-Clients."""


class ParameterError(EurekaError, ValueError):
    """Pflichtkonfiguration fehlt (appName, instanceId oder serviceUrls)."""


class TransportError(EurekaError):
    """Verbindungsfehler oder Fehler beim Lesen der Antwort."""

    def __init__(self, message: str, url: str = None):
        super().__init__(message)
        self.url = url


class ProtocolError(EurekaError):
    pass


class EmptyResponseError(ProtocolError):
    """Die Registry hat keinen Body geliefert."""

    def __init__(self, message: str = "data empty"):
        super().__init__(message)


class DecodeError(ProtocolError):
    """Antwort konnte nicht als JSON/XML-Datensatz gelesen werden."""
