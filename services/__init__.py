"""
Video proxy services

- video_generation: upstream client, status poller, video stores
- gateway: FastAPI request handlers
"""
