"""Canned reply suggestions shown above the chat input."""

# Offered to the buyer at any point of the conversation
QUICK_REPLIES: list[str] = [
    "Salam, dispo ?",
    "Prix final ?",
    "Localisation ?",
    "Je suis intéressé !",
]

# (keywords, replies) checked in order; first match wins
SMART_REPLY_RULES: list[tuple[tuple[str, ...], list[str]]] = [
    (("prix", "thaman", "chhal"), ["Akhir thaman howa hada.", "Momkin ntfahmo.", "Propose ton prix."]),
    (("dispo", "mawjoud", "kayn"), ["Oui, mizal dispo.", "Mawjoud a khouya.", "Vendu, désolé."]),
    (("fin", "localisation", "place"), ["Casa, Maarif.", "Rabat, Agdal.", "Envoie-moi ta localisation."]),
    (("salam", "bonjour"), ["Wa alaykoum salam.", "Bonjour, ça va ?", "Merhba bik."]),
]

DEFAULT_SMART_REPLIES: list[str] = [
    "Oui, disponible.",
    "Merci de votre intérêt.",
    "Je vous réponds bientôt.",
]


def generate_smart_replies(last_message: str) -> list[str]:
    """Suggest seller replies for the buyer's last message."""
    text = last_message.lower()
    for keywords, replies in SMART_REPLY_RULES:
        if any(keyword in text for keyword in keywords):
            return list(replies)
    return list(DEFAULT_SMART_REPLIES)


def suggest_replies(
    viewer_id: str,
    seller_id: str,
    last_message_text: str | None,
    last_message_sender_id: str | None,
) -> list[str]:
    """Pick the suggestions to show a participant.

    Buyers always get the quick replies. Sellers get smart replies only
    when the last message came from the buyer.
    """
    if viewer_id != seller_id:
        return list(QUICK_REPLIES)
    if last_message_text is None or last_message_sender_id in (None, viewer_id):
        return []
    return generate_smart_replies(last_message_text)
