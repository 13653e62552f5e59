"""Repository layer: guild settings and points leaderboard stores."""
