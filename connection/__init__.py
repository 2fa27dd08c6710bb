"""
Connection layer — one physical WebSocket, many logical exchanges.

SRP split:
  transport.py     — WebSocket transport (websockets library)
  loopback.py      — in-memory transport for replay and tests
  subscription.py  — cancellable subscription handle + event channel
  manager.py       — correlation ids, waiter table, state machine
  errors.py        — connection / auth / request error taxonomy
"""
