"""Provider strategies, the normalized event model and the streaming dispatcher"""
