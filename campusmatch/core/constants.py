"""
Core constants used across the engine. Keep these simple and documented.
"""

# Similarity contributed by a dimension that is missing on either side
NEUTRAL_SIMILARITY: float = 0.5

MAX_SCORE: float = 100.0

EARTH_RADIUS_KM: float = 6371.0

# Order matters: this is the layout of the personality vector
PERSONALITY_TRAITS: tuple[str, ...] = (
    "extroversion",
    "openness",
    "conscientiousness",
    "agreeableness",
    "neuroticism",
)

# Factor name -> UserPreferences weight field
WEIGHT_FIELDS: dict[str, str] = {
    "age": "age_weight",
    "distance": "distance_weight",
    "interests": "interests_weight",
    "college": "college_weight",
    "major": "major_weight",
    "year": "year_weight",
    "personality": "personality_weight",
}

# College / major preference keywords
PREFERENCE_ANY = "any"
PREFERENCE_SAME = "same"
PREFERENCE_DIFFERENT = "different"

# Redis keys (formatted with the configured prefix)
USER_KEY = "{prefix}user:{user_id}"
USERS_SET_KEY = "{prefix}users"
USERS_BY_AGE_KEY = "{prefix}users:by_age"
TRAITS_KEY = "{prefix}traits:{user_id}"
PREFERENCES_KEY = "{prefix}prefs:{user_id}"
SCORECARD_KEY = "{prefix}scorecard:{user_id}"
GENERATION_KEY = "{prefix}generation:{user_id}"
LIKE_KEY = "{prefix}like:{sender_id}:{receiver_id}"
LIKES_OUT_KEY = "{prefix}likes:out:{sender_id}"
MATCH_KEY = "{prefix}match:{user1_id}:{user2_id}"
MATCHES_OF_KEY = "{prefix}matches:{user_id}"
