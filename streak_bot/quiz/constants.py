# streak_bot/quiz/constants.py

ROUND_TRANSITION_DELAY = 0.3

LEADERBOARD_SIZE = 10

MSG_ALREADY_RUNNING = "There's already an active quiz. Solve it first or wait for it to complete!"
MSG_NOTHING_TO_STOP = "❌ There's no ongoing game to stop in this channel."
MSG_NO_LOCATIONS = "Could not fetch locations for this map."
MSG_RENDER_FAILED = "An error occurred while creating the quiz. Please try `!play` again."
MSG_GEOCODE_DOWN = "Couldn't look up this location right now. Try `!play` again in a moment."
MSG_CANCELLED = "The quiz was stopped before it finished loading."
MSG_NO_MAPS = "No maps are available right now."
MSG_ADMIN_ONLY = "This command can only be used in the bot admin channel."
