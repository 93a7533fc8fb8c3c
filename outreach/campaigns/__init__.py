from outreach.campaigns.orchestrator import CampaignOrchestrator, CampaignSettings

__all__ = ['CampaignOrchestrator', 'CampaignSettings']
