"""
zkill-matrix Services

Long-running components of the bot: the RedisQ pipeline and health reporting.
"""
