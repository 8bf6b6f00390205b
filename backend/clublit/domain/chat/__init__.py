"""Club chat: message store, authorization policy, presence and fan-out."""
