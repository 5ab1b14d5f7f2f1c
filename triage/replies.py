"""
Templated replies.

Fixed, per-language texts for every intent plus the quick-reply buttons
offered with them. TemplateReplyGenerator is the default ReplyGenerator
and the one used whenever no LLM is configured.

Escalation and apology texts live here too so every channel renders the
same wording.
"""

import config
from triage.models import Button

# ── Intent Replies ─────────────────────────────────────────────────────────

REPLY_TEMPLATES: dict[str, dict[str, str]] = {
    "en": {
        "greeting": "Hi, how are you? How can I help you today?",
        "symptom_check": (
            "I understand you're not feeling well. "
            "Can you tell me more about your symptoms?"
        ),
        "emergency": (
            "This seems urgent. Please call emergency services immediately at "
            "{hotline} or visit the nearest hospital."
        ),
        "medication_query": (
            "I can share general information about medicines, but please follow "
            "the dosage your doctor or pharmacist gave you. Which medicine are you asking about?"
        ),
        "vaccination_info": (
            "I can help you with vaccination information. What would you like to know?"
        ),
        "prevention": (
            "Good hygiene, clean drinking water, timely vaccination and a balanced diet "
            "prevent many illnesses. Which illness would you like to prevent?"
        ),
        "health_education": (
            "I'd be happy to share health information. Which topic are you interested in?"
        ),
        "farewell": "Take care! Message me any time you need health advice.",
        "general": (
            "I'm not sure I understood. You can describe your symptoms, "
            "or ask about vaccines, medicines or staying healthy."
        ),
    },
    "hi": {
        "greeting": "नमस्ते, आप कैसे हैं? मैं आज आपकी क्या मदद कर सकता हूं?",
        "symptom_check": "मैं समझता हूं कि आपकी तबीयत ठीक नहीं है। कृपया अपने लक्षणों के बारे में और बताएं।",
        "emergency": (
            "यह गंभीर लगता है। कृपया तुरंत {hotline} पर कॉल करें या नज़दीकी अस्पताल जाएं।"
        ),
        "medication_query": "आप किस दवा के बारे में पूछ रहे हैं? कृपया अपने डॉक्टर द्वारा बताई गई खुराक ही लें।",
        "vaccination_info": "मैं टीकाकरण की जानकारी में आपकी मदद कर सकता हूं। आप क्या जानना चाहते हैं?",
        "prevention": "साफ़-सफ़ाई, स्वच्छ पानी, समय पर टीकाकरण और संतुलित आहार कई बीमारियों से बचाते हैं।",
        "health_education": "आप किस स्वास्थ्य विषय के बारे में जानना चाहते हैं?",
        "farewell": "अपना ख्याल रखें! जब भी ज़रूरत हो, मुझे संदेश भेजें।",
        "general": "मैं समझ नहीं पाया। कृपया अपने लक्षण बताएं या टीके, दवा या बचाव के बारे में पूछें।",
    },
}

QUICK_REPLIES: dict[str, list[Button]] = {
    "greeting": [
        Button(id="health_question", title="Health Question"),
        Button(id="vaccination_info", title="Vaccination Info"),
        Button(id="symptom_check", title="Symptoms Check"),
    ],
    "vaccination_info": [
        Button(id="child_vaccines", title="Child Vaccines"),
        Button(id="adult_vaccines", title="Adult Vaccines"),
        Button(id="vaccine_schedule", title="Vaccine Schedule"),
    ],
    "general": [
        Button(id="symptom_check", title="Symptoms Check"),
        Button(id="vaccination_info", title="Vaccination Info"),
        Button(id="talk_to_doctor", title="Talk to Doctor"),
    ],
}

# ── Fixed Messages ─────────────────────────────────────────────────────────

APOLOGY: dict[str, str] = {
    "en": (
        "I'm sorry, I'm having trouble responding right now. Please try again in a moment. "
        "If this is an emergency, call {hotline} immediately."
    ),
    "hi": (
        "क्षमा करें, मैं अभी जवाब नहीं दे पा रहा हूं। कृपया थोड़ी देर बाद फिर कोशिश करें। "
        "आपातकाल में तुरंत {hotline} पर कॉल करें।"
    ),
}

ESCALATION_ASSIGNED: dict[str, str] = {
    "en": "I'm connecting you with {name}, a health professional who can better assist you.",
    "hi": "मैं आपको {name} से जोड़ रहा हूं, जो एक स्वास्थ्य कर्मी हैं और आपकी बेहतर मदद कर सकते हैं।",
}

ESCALATION_FALLBACK: dict[str, str] = {
    "en": (
        "I couldn't reach a health worker right now. "
        "Please call emergency helpline: {hotline}"
    ),
    "hi": "अभी कोई स्वास्थ्य कर्मी उपलब्ध नहीं है। कृपया आपातकालीन हेल्पलाइन पर कॉल करें: {hotline}",
}

URGENT_NOTICE: dict[str, str] = {
    "en": "If this is life-threatening, call {hotline} now.",
    "hi": "अगर जान का खतरा है, तो अभी {hotline} पर कॉल करें।",
}


def localized(bank: dict[str, str], language: str, **values) -> str:
    """Pick the language's text (English fallback) and fill in the hotline."""
    values.setdefault("hotline", config.EMERGENCY_HOTLINE)
    return bank.get(language, bank["en"]).format(**values)


def quick_replies_for(intent: str) -> list[Button]:
    return list(QUICK_REPLIES.get(intent, []))


class TemplateReplyGenerator:
    """ReplyGenerator backed by REPLY_TEMPLATES. Never fails."""

    async def generate(self, intent: str, entities: dict[str, str], language: str) -> str:
        templates = REPLY_TEMPLATES.get(language, REPLY_TEMPLATES["en"])
        text = templates.get(intent, templates["general"])
        return text.format(hotline=config.EMERGENCY_HOTLINE)
