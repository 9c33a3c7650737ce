from arena.models.user import User, DailyActivity
from arena.models.challenge import Challenge, ChallengeSession, WeeklyFreePick
from arena.models.submission import Submission, ChallengeSolve, Flag
from arena.models.contest import Contest, ContestParticipant, ContestAttempt
from arena.models.leaderboard import LeaderboardSnapshot

__all__ = [
    "User", "DailyActivity",
    "Challenge", "ChallengeSession", "WeeklyFreePick",
    "Submission", "ChallengeSolve", "Flag",
    "Contest", "ContestParticipant", "ContestAttempt",
    "LeaderboardSnapshot",
]
