"""
channels — Outbound notification channels.

    sms_gateway — SMS + voice call (simulation / relay / Twilio)
"""
