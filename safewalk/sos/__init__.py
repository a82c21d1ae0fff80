"""
sos — Emergency trigger, contact fan-out and resolution.

Sub-modules:
    models      — SOSEvent, DispatchReport and friends
    message     — emergency SMS body, map share link
    dispatcher  — EmergencyDispatcher
"""
