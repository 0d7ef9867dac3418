"""Voice provider gateway layer.

Async infrastructure in front of the ElevenLabs HTTP API:
  - Bounded request dispatcher (FIFO admission, concurrency cap)
  - Voice settings normalizer (defaults + clamping)
  - Provider error translator (HTTP status → domain message)
  - Provider client (voices, cloning, synthesis, deletion, user info)
"""
