"""medrelay — real-time relay between telemedicine clients and the document store.

One websocket connection becomes one session: the client authenticates
once, then multiplexes live subscriptions (appointments, chats, chat
messages, profiles) and one-shot get/post operations over it.
"""

__version__ = "0.1.0"
