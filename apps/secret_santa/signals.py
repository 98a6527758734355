from django.dispatch import Signal

# Sent once the transaction that wrote an EventActivity row has committed.
# Receivers get ``activity`` (the EventActivity instance). Notification
# delivery subscribes here; the engine itself never delivers anything.
activity_recorded = Signal()
