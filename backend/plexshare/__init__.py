"""
Plex access provisioning service.

Links Stripe entitlements and locally issued invite codes to library
shares on a Plex Media Server.
"""
