"""Custom exception classes for the stipend flight pricer"""


class StipendFlightsError(Exception):
    """Base exception for flight pricing errors"""

    pass


class BrowserLaunchError(StipendFlightsError):
    """Raised when the automated browser cannot be started"""

    pass


class ElementNotFoundError(StipendFlightsError):
    """Raised when no locator strategy resolves a required control"""

    def __init__(self, target: str, message: str = ""):
        self.target = target
        super().__init__(message or f"Could not locate '{target}'")


class LocationInputError(StipendFlightsError):
    """Raised when the origin or destination cannot be entered

    This is the one step failure that aborts the whole query: without a route
    there is nothing meaningful to search.
    """

    pass


class DateSelectionError(StipendFlightsError):
    """Raised when a travel date cannot be picked in the calendar"""

    pass


class FilterVerificationError(StipendFlightsError):
    """Raised when the alliance filter does not show as applied"""

    pass


class ExtractionError(StipendFlightsError):
    """Raised when the results page cannot be parsed at all"""

    pass


class AmadeusError(StipendFlightsError):
    """Raised when the Amadeus API returns an unusable response"""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class AmadeusAuthError(AmadeusError):
    """Raised when Amadeus rejects the client credentials"""

    pass


class CircuitOpenError(StipendFlightsError):
    """Raised when a provider's circuit breaker is open"""

    pass
