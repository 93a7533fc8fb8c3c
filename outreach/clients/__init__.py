from outreach.clients.content_generator import ContentGeneratorClient, Draft
from outreach.clients.email_transport import DeliveryResult, ResendEmailTransport
from outreach.clients.website_enricher import EnrichmentResult, WebsiteEnricher

__all__ = [
    'ContentGeneratorClient',
    'Draft',
    'DeliveryResult',
    'ResendEmailTransport',
    'EnrichmentResult',
    'WebsiteEnricher',
]
