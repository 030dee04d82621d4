from models.wallet import UserWallet
from models.credit import UserCredit
from models.payment import CreditPackage, CreditTopup, TopupStatus
from models.usage import UsageEvent, UsageStatus, UserUsageTotal
from models.notification import AdminNotification, UserNotification
from models.prompt import ScriptPrompt

__all__ = [
    'UserWallet',
    'UserCredit',
    'CreditPackage',
    'CreditTopup',
    'TopupStatus',
    'UsageEvent',
    'UsageStatus',
    'UserUsageTotal',
    'AdminNotification',
    'UserNotification',
    'ScriptPrompt',
]
