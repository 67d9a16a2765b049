from app.models.player import Player
from app.models.leaderboard_history import LeaderboardHistory
from app.models.app_user import AppUser
from app.models.premium import (
    PremiumFeatureActivation,
    PremiumSubscription,
    StripeWebhookEvent,
)
