from outreach.handlers.follow_up import FollowUpHandler
from outreach.handlers.generate import GenerateHandler
from outreach.handlers.send import SendHandler

__all__ = ['FollowUpHandler', 'GenerateHandler', 'SendHandler']
