from fastapi import Request

from app.services.exchange import TokenExchangeService


def get_exchange_service(request: Request) -> TokenExchangeService:
    """The pipeline built by create_app() for this application instance."""
    return request.app.state.exchange_service
