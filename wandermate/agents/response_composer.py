# agents/response_composer.py
"""
Response Composer
Builds the channel-neutral Reply for a turn: text, up to 3 quick replies
and up to 3 buttons. English and Hindi.

The composer only reports what the tool results say. A step that did not
succeed is never described as done.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..schemas.agent_schemas import (
    MAX_QUICK_REPLIES,
    Intent,
    PolicyDecision,
    Reply,
    ReplyButton,
    ToolCallResult,
    ToolStatus,
    TurnOutcome,
)


@dataclass
class TurnDraft:
    """Everything the composer needs about a turn in progress."""
    outcome: TurnOutcome
    intent: Optional[Intent] = None
    decision: Optional[PolicyDecision] = None
    tool_results: List[ToolCallResult] = field(default_factory=list)
    estimated_amount: Optional[float] = None
    unpaid_booking_id: Optional[str] = None
    interrupted: bool = False


# ============================================
# Message catalog
# ============================================

MESSAGES: Dict[str, Dict[str, str]] = {
    "welcome": {
        "en": (
            "🙏 *Namaste!* Welcome to WanderMate, your travel companion for Varanasi!\n\n"
            "Here's what I can do for you:\n"
            "🚣 *Boat tours* - sunrise, sunset and private rides on the Ganges\n"
            "💳 *Payments* - secure payment orders for your bookings\n"
            "🌤️ *Weather* - current conditions before you head out\n"
            "🗺️ *Directions* - routes to ghats, temples and more\n\n"
            "Just tell me what you need!"
        ),
        "hi": (
            "🙏 *नमस्ते!* वाराणसी के लिए WanderMate में आपका स्वागत है!\n\n"
            "मैं यह कर सकता हूँ:\n"
            "🚣 *नाव की सवारी* - सूर्योदय, सूर्यास्त और निजी सवारी\n"
            "💳 *भुगतान* - आपकी बुकिंग के लिए सुरक्षित भुगतान\n"
            "🌤️ *मौसम* - बाहर जाने से पहले मौसम की जानकारी\n"
            "🗺️ *रास्ता* - घाटों और मंदिरों तक का रास्ता\n\n"
            "बस मुझे बताएं कि आपको क्या चाहिए!"
        ),
    },
    "capabilities": {
        "en": "I can book boat tours, create and verify payments, check the weather and give you directions around Varanasi.",
        "hi": "मैं नाव की सवारी बुक कर सकता हूँ, भुगतान बना और जाँच सकता हूँ, मौसम बता सकता हूँ और रास्ता दिखा सकता हूँ।",
    },
    "tours": {
        "en": (
            "Our boat tours on the Ganges:\n"
            "- Sunrise Ghat Experience (₹1,200, 5:30 AM)\n"
            "- Sunset Ghat Serenity (₹1,500, 5:00 PM)\n"
            "- Day Ghat Discovery (₹1,800, 9:00 AM)\n"
            "- Evening Mystique (₹1,400, 6:30 PM)\n"
            "- Photography Special Tour (₹2,200, 5:00 AM)\n"
            "- Private Luxury Experience (₹3,500, flexible)\n"
            "Prices are per guest. Which one would you like?"
        ),
        "hi": (
            "गंगा पर हमारी नाव की सवारी:\n"
            "- सूर्योदय घाट अनुभव (₹1,200)\n"
            "- सूर्यास्त घाट (₹1,500)\n"
            "- दिन में घाट दर्शन (₹1,800)\n"
            "- शाम की सवारी (₹1,400)\n"
            "- फोटोग्राफी टूर (₹2,200)\n"
            "- निजी लक्ज़री सवारी (₹3,500)\n"
            "कीमत प्रति व्यक्ति है। आप कौन सी सवारी चाहेंगे?"
        ),
    },
    "temples": {
        "en": "Kashi Vishwanath is the heart of Varanasi. Sankat Mochan and Durga Temple are close by. Go early to avoid the queues.",
        "hi": "काशी विश्वनाथ वाराणसी का हृदय है। संकट मोचन और दुर्गा मंदिर भी पास में हैं। भीड़ से बचने के लिए सुबह जल्दी जाएँ।",
    },
    "ghats": {
        "en": "Dashashwamedh Ghat hosts the evening Ganga Aarti. Assi Ghat is calmer at sunrise, and Manikarnika is the main cremation ghat.",
        "hi": "दशाश्वमेध घाट पर शाम की गंगा आरती होती है। अस्सी घाट सूर्योदय के समय शांत रहता है।",
    },
    "food": {
        "en": "Try kachori sabzi for breakfast, then lassi at Blue Lassi and malaiyo in winter. Banarasi paan is a must after dinner.",
        "hi": "नाश्ते में कचौरी सब्ज़ी, ब्लू लस्सी की लस्सी और सर्दियों में मलइयो ज़रूर चखें।",
    },
    "emergency": {
        "en": (
            "🚨 *Emergency help in Varanasi* (24/7)\n\n"
            "👮 Police: *100* (WhatsApp +91-9454400100)\n"
            "🚑 Ambulance: *108* (WhatsApp +91-9454400108)\n"
            "🚒 Fire: *101*\n"
            "🏥 Sir Sunderlal Hospital, BHU Campus, Lanka: +91-542-2307777\n"
            "ℹ️ Tourist Helpline: +91-542-2501204 (WhatsApp +91-9450500504)\n\n"
            "If you are in immediate danger, call 112 now."
        ),
        "hi": (
            "🚨 *वाराणसी में आपातकालीन सहायता* (24/7)\n\n"
            "👮 पुलिस: *100* (WhatsApp +91-9454400100)\n"
            "🚑 एम्बुलेंस: *108* (WhatsApp +91-9454400108)\n"
            "🚒 दमकल: *101*\n"
            "🏥 सर सुंदरलाल अस्पताल, BHU परिसर, लंका: +91-542-2307777\n"
            "ℹ️ पर्यटक हेल्पलाइन: +91-542-2501204 (WhatsApp +91-9450500504)\n\n"
            "तुरंत खतरे में हों तो अभी 112 पर कॉल करें।"
        ),
    },
    "general": {
        "en": "I'm here to help with your Varanasi trip. Ask me about boat tours, weather or directions.",
        "hi": "मैं आपकी वाराणसी यात्रा में मदद के लिए यहाँ हूँ। नाव की सवारी, मौसम या रास्ते के बारे में पूछें।",
    },
    "declined": {
        "en": "I'm not sure I understood that. Here's what I can help with:",
        "hi": "मैं समझ नहीं पाया। मैं इनमें मदद कर सकता हूँ:",
    },
    "cancelled": {
        "en": "Okay, I've cancelled that. Nothing was booked or charged.",
        "hi": "ठीक है, मैंने इसे रद्द कर दिया। कुछ भी बुक या चार्ज नहीं हुआ।",
    },
    "booking_left_unpaid": {
        "en": "Okay, I won't retry the payment. Booking {booking_id} is left unpaid and nothing was charged.",
        "hi": "ठीक है, भुगतान दोबारा नहीं होगा। बुकिंग {booking_id} बिना भुगतान के है और कुछ भी चार्ज नहीं हुआ।",
    },
    "confirm_book_tour": {
        "en": "Please confirm: book *{tour}* on {date} for {guests} guest(s){amount}.",
        "hi": "कृपया पुष्टि करें: *{tour}* {date} को {guests} लोगों के लिए बुक करें{amount}।",
    },
    "confirm_create_payment_order": {
        "en": "Please confirm: create a payment order for {amount}.",
        "hi": "कृपया पुष्टि करें: {amount} का भुगतान ऑर्डर बनाएं।",
    },
    "confirm_verify_payment": {
        "en": "Please confirm: verify payment {payment_id} for order {order_id}.",
        "hi": "कृपया पुष्टि करें: ऑर्डर {order_id} के लिए भुगतान {payment_id} की जाँच करें।",
    },
    "confirm_prompt": {
        "en": "Reply *Yes, confirm* to go ahead or *Cancel* to stop.",
        "hi": "आगे बढ़ने के लिए *हाँ* या रोकने के लिए *रद्द* लिखें।",
    },
    "missing_slots": {
        "en": "To {action} I still need: {slots}.",
        "hi": "{action} के लिए मुझे अभी यह चाहिए: {slots}।",
    },
    "booking_done": {
        "en": "✅ *Booking confirmed!* {tour} on {date} for {guests} guest(s).\nBooking ID: {booking_id}\nConfirmation code: {code}\nAmount: {amount}",
        "hi": "✅ *बुकिंग पक्की!* {tour}, {date}, {guests} लोग।\nबुकिंग आईडी: {booking_id}\nपुष्टि कोड: {code}\nराशि: {amount}",
    },
    "order_done": {
        "en": "💳 Payment order {order_id} created for {amount}. Complete the payment to finish.",
        "hi": "💳 {amount} का भुगतान ऑर्डर {order_id} बन गया है। भुगतान पूरा करें।",
    },
    "verify_done": {
        "en": "✅ Payment {payment_id} for order {order_id} is verified.",
        "hi": "✅ ऑर्डर {order_id} का भुगतान {payment_id} सत्यापित हो गया है।",
    },
    "weather_done": {
        "en": "🌤️ Weather in {city}: {temp}°C, {condition} (feels like {feels}°C), humidity {humidity}%.",
        "hi": "🌤️ {city} का मौसम: {temp}°C, {condition} (महसूस {feels}°C), नमी {humidity}%।",
    },
    "route_done": {
        "en": "🗺️ Route to {destination} ({mode}): {distance}, about {duration}.",
        "hi": "🗺️ {destination} तक का रास्ता ({mode}): {distance}, लगभग {duration}।",
    },
    "partial_failure": {
        "en": "Part of your request went through, part did not:",
        "hi": "आपके अनुरोध का कुछ हिस्सा पूरा हुआ, कुछ नहीं:",
    },
    "booking_unpaid": {
        "en": "Your booking is held but *not paid*. You can retry the payment or cancel the booking.",
        "hi": "आपकी बुकिंग रखी गई है पर *भुगतान नहीं हुआ*। आप फिर से भुगतान कर सकते हैं या बुकिंग रद्द कर सकते हैं।",
    },
    "failed": {
        "en": "Sorry, I couldn't complete that: {reason}.",
        "hi": "क्षमा करें, यह पूरा नहीं हो सका: {reason}।",
    },
    "nothing_charged": {
        "en": "Nothing was booked or charged.",
        "hi": "कुछ भी बुक या चार्ज नहीं हुआ।",
    },
    "payment_not_verified": {
        "en": "⚠️ This payment could *not* be verified ({reason}). Please do not treat it as complete.",
        "hi": "⚠️ यह भुगतान सत्यापित *नहीं* हो सका ({reason})। कृपया इसे पूरा न मानें।",
    },
    "timed_out": {
        "en": "Sorry, this is taking longer than expected and I had to stop.",
        "hi": "क्षमा करें, इसमें अपेक्षा से अधिक समय लग रहा है।",
    },
    "completed_steps": {
        "en": "Already done:",
        "hi": "पूरा हो चुका:",
    },
    "no_steps_completed": {
        "en": "Nothing was completed.",
        "hi": "कुछ भी पूरा नहीं हुआ।",
    },
}

QUICK_REPLIES: Dict[str, Dict[str, List[str]]] = {
    "capabilities": {"en": ["Book a boat tour", "Weather today", "Get directions"],
                     "hi": ["नाव बुक करें", "आज का मौसम", "रास्ता बताएं"]},
    "confirm": {"en": ["Yes, confirm", "Cancel"], "hi": ["हाँ", "रद्द"]},
    "partial": {"en": ["Retry payment", "Cancel booking"], "hi": ["फिर से भुगतान", "रद्द करें"]},
    "retry": {"en": ["Try again", "Cancel"], "hi": ["फिर से", "रद्द"]},
    "after_booking": {"en": ["Weather today", "Get directions", "Book another tour"],
                      "hi": ["आज का मौसम", "रास्ता बताएं", "और बुकिंग"]},
    "tours": {"en": ["Sunrise tour", "Sunset tour", "Private tour"],
              "hi": ["सूर्योदय सवारी", "सूर्यास्त सवारी", "निजी सवारी"]},
    "emergency": {"en": ["🚨 Emergency", "🏥 Medical", "👮 Police"],
                  "hi": ["🚨 आपातकाल", "🏥 अस्पताल", "👮 पुलिस"]},
    "date": {"en": ["Today", "Tomorrow", "Cancel"], "hi": ["आज", "कल", "रद्द"]},
    "guests": {"en": ["2 people", "4 people", "Cancel"], "hi": ["2 लोग", "4 लोग", "रद्द"]},
}

SLOT_LABELS: Dict[str, Dict[str, str]] = {
    "tour_id": {"en": "which tour", "hi": "कौन सी सवारी"},
    "date": {"en": "the date", "hi": "तारीख"},
    "guest_count": {"en": "the number of guests", "hi": "लोगों की संख्या"},
    "amount": {"en": "the amount", "hi": "राशि"},
    "order_id": {"en": "the order id", "hi": "ऑर्डर आईडी"},
    "payment_id": {"en": "the payment id", "hi": "भुगतान आईडी"},
    "signature": {"en": "the payment signature", "hi": "भुगतान हस्ताक्षर"},
    "destination": {"en": "where you want to go", "hi": "आप कहाँ जाना चाहते हैं"},
}

ACTION_LABELS: Dict[str, Dict[str, str]] = {
    "book_tour": {"en": "book your tour", "hi": "बुकिंग"},
    "create_payment_order": {"en": "create the payment order", "hi": "भुगतान ऑर्डर"},
    "verify_payment": {"en": "verify the payment", "hi": "भुगतान जाँच"},
    "get_navigation": {"en": "find the route", "hi": "रास्ता"},
}

STEP_LABELS: Dict[str, Dict[str, str]] = {
    "booking.book": {"en": "Booking", "hi": "बुकिंग"},
    "payment.create_order": {"en": "Payment order", "hi": "भुगतान ऑर्डर"},
    "payment.verify": {"en": "Payment verification", "hi": "भुगतान जाँच"},
    "weather.current": {"en": "Weather lookup", "hi": "मौसम"},
    "navigation.route": {"en": "Route lookup", "hi": "रास्ता"},
}

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$"}


def format_amount(amount: Optional[float], currency: str = "INR") -> str:
    if amount is None:
        return "?"
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    value = f"{amount:,.0f}" if float(amount).is_integer() else f"{amount:,.2f}"
    return f"{symbol}{value}" if symbol else f"{value} {currency}"


class ResponseComposer:
    """Composes replies from turn drafts. Pure, no I/O."""

    def __init__(self, default_language: str = "en"):
        self.default_language = default_language

    def _lang(self, language: Optional[str]) -> str:
        return language if language in ("en", "hi") else self.default_language

    def _t(self, key: str, lang: str, **kwargs) -> str:
        template = MESSAGES[key].get(lang) or MESSAGES[key]["en"]
        return template.format(**kwargs) if kwargs else template

    def _quick(self, key: str, lang: str) -> List[str]:
        options = QUICK_REPLIES[key]
        return list(options.get(lang) or options["en"])[:MAX_QUICK_REPLIES]

    # ============================================
    # Entry point
    # ============================================

    def compose(self, draft: TurnDraft, language: Optional[str] = None) -> Reply:
        lang = self._lang(language)
        outcome = draft.outcome

        if outcome == TurnOutcome.DECLINED:
            return Reply(text=self._t("declined", lang), quick_replies=self._quick("capabilities", lang))
        if outcome == TurnOutcome.CANCELLED:
            if draft.unpaid_booking_id:
                text = self._t("booking_left_unpaid", lang, booking_id=draft.unpaid_booking_id)
            else:
                text = self._t("cancelled", lang)
            return Reply(text=text, quick_replies=self._quick("capabilities", lang))
        if outcome == TurnOutcome.AWAITING_CONFIRMATION:
            return self._compose_confirmation(draft, lang)
        if outcome == TurnOutcome.PARTIAL_FAILURE:
            return self._compose_partial_failure(draft, lang)
        if outcome == TurnOutcome.FAILED:
            return self._compose_failure(draft, lang)
        if outcome == TurnOutcome.TIMED_OUT:
            return self._compose_timeout(draft, lang)
        return self._compose_success(draft, lang)

    def welcome(self, language: Optional[str] = None) -> Reply:
        lang = self._lang(language)
        return Reply(text=self._t("welcome", lang), quick_replies=self._quick("capabilities", lang))

    # ============================================
    # CONFIRM
    # ============================================

    def _compose_confirmation(self, draft: TurnDraft, lang: str) -> Reply:
        intent = draft.intent

        if intent.missing_slots:
            action = ACTION_LABELS.get(intent.kind, {}).get(lang, intent.kind)
            slots = ", ".join(SLOT_LABELS.get(s, {}).get(lang, s) for s in intent.missing_slots)
            text = self._t("missing_slots", lang, action=action, slots=slots)

            first_missing = intent.missing_slots[0]
            if first_missing == "tour_id":
                quick = self._quick("tours", lang)
            elif first_missing == "date":
                quick = self._quick("date", lang)
            elif first_missing == "guest_count":
                quick = self._quick("guests", lang)
            else:
                quick = [self._quick("confirm", lang)[-1]]
            return Reply(text=text, quick_replies=quick)

        if intent.kind == "book_tour":
            amount = ""
            if draft.estimated_amount:
                amount = f" ({format_amount(draft.estimated_amount)})"
            summary = self._t(
                "confirm_book_tour", lang,
                tour=intent.tour_name or intent.tour_id,
                date=intent.date,
                guests=intent.guest_count,
                amount=amount
            )
        elif intent.kind == "create_payment_order":
            summary = self._t(
                "confirm_create_payment_order", lang,
                amount=format_amount(intent.amount, intent.currency)
            )
        else:
            summary = self._t(
                "confirm_verify_payment", lang,
                order_id=intent.order_id,
                payment_id=intent.payment_id
            )

        return Reply(
            text=f"{summary}\n{self._t('confirm_prompt', lang)}",
            quick_replies=self._quick("confirm", lang)
        )

    # ============================================
    # EXECUTE success
    # ============================================

    def _compose_success(self, draft: TurnDraft, lang: str) -> Reply:
        intent = draft.intent
        kind = intent.kind if intent else "general_chat"

        if kind == "general_chat":
            topic = getattr(intent, "topic", "general") if intent else "general"
            if topic == "greeting":
                return self.welcome(lang)
            key = topic if topic in MESSAGES else "general"
            quick = self._quick(topic if topic in ("tours", "emergency") else "capabilities", lang)
            return Reply(text=self._t(key, lang), quick_replies=quick)

        lines = [self._describe_success(result, intent, lang) for result in draft.tool_results if result.succeeded]
        buttons: List[ReplyButton] = []
        quick = self._quick("capabilities", lang)

        for result in draft.tool_results:
            if result.operation == "create_order" and result.succeeded:
                buttons.append(ReplyButton(label="Pay now", action=f"pay:{result.payload.get('order_id')}"))
            if result.operation == "book":
                quick = self._quick("after_booking", lang)

        return Reply(text="\n".join(lines), quick_replies=quick, buttons=buttons)

    def _describe_success(self, result: ToolCallResult, intent: Optional[Intent], lang: str) -> str:
        payload = result.payload or {}
        step = f"{result.provider}.{result.operation}"

        if step == "booking.book":
            return self._t(
                "booking_done", lang,
                tour=payload.get("offering_name") or getattr(intent, "tour_name", None) or payload.get("offering_id"),
                date=payload.get("date"),
                guests=payload.get("guest_count"),
                booking_id=payload.get("booking_id"),
                code=payload.get("confirmation_code"),
                amount=format_amount(payload.get("amount"), payload.get("currency", "INR"))
            )
        if step == "payment.create_order":
            return self._t(
                "order_done", lang,
                order_id=payload.get("order_id"),
                amount=format_amount(payload.get("amount"), payload.get("currency", "INR"))
            )
        if step == "payment.verify":
            return self._t(
                "verify_done", lang,
                order_id=payload.get("order_id"),
                payment_id=payload.get("payment_id")
            )
        if step == "weather.current":
            text = self._t(
                "weather_done", lang,
                city=payload.get("city"),
                temp=payload.get("temperature_c"),
                condition=payload.get("condition"),
                feels=payload.get("feels_like_c"),
                humidity=payload.get("humidity")
            )
            if payload.get("description") and lang == "en":
                text += f" {payload['description']}."
            return text
        if step == "navigation.route":
            text = self._t(
                "route_done", lang,
                destination=payload.get("destination"),
                mode=payload.get("mode"),
                distance=payload.get("distance"),
                duration=payload.get("duration")
            )
            steps = payload.get("steps") or []
            for i, route_step in enumerate(steps[:5], 1):
                text += f"\n{i}. {route_step.get('instruction')} ({route_step.get('distance')})"
            return text
        return self._step_label(result, lang)

    # ============================================
    # Failures
    # ============================================

    def _step_label(self, result: ToolCallResult, lang: str) -> str:
        labels = STEP_LABELS.get(f"{result.provider}.{result.operation}", {})
        return labels.get(lang) or labels.get("en") or f"{result.provider}.{result.operation}"

    def _step_line(self, result: ToolCallResult, lang: str) -> str:
        label = self._step_label(result, lang)
        if result.status == ToolStatus.SUCCESS:
            payload = result.payload or {}
            ref = payload.get("booking_id") or payload.get("order_id") or ""
            return f"✅ {label}: {ref}".rstrip(": ")
        if result.status == ToolStatus.SKIPPED:
            return f"⏭️ {label}: not attempted"
        return f"❌ {label}: {result.reason or 'failed'}"

    def _compose_partial_failure(self, draft: TurnDraft, lang: str) -> Reply:
        lines = [self._t("partial_failure", lang)]
        lines += [self._step_line(result, lang) for result in draft.tool_results]

        booked = any(r.operation == "book" and r.succeeded for r in draft.tool_results)
        payment_failed = any(
            r.provider == "payment" and not r.succeeded for r in draft.tool_results
        )
        if booked and payment_failed:
            lines.append(self._t("booking_unpaid", lang))
            quick = self._quick("partial", lang)
        else:
            quick = self._quick("retry", lang)

        return Reply(text="\n".join(lines), quick_replies=quick)

    def _compose_failure(self, draft: TurnDraft, lang: str) -> Reply:
        failed = next((r for r in draft.tool_results if r.status in (
            ToolStatus.FATAL_FAILURE, ToolStatus.RETRYABLE_FAILURE)), None)
        reason = failed.reason if failed and failed.reason else "unexpected error"

        if failed is not None and failed.operation == "verify":
            text = self._t("payment_not_verified", lang, reason=reason)
        else:
            text = self._t("failed", lang, reason=reason)
            if not any(r.succeeded for r in draft.tool_results) and failed is not None and failed.provider in ("booking", "payment"):
                text += "\n" + self._t("nothing_charged", lang)

        return Reply(text=text, quick_replies=self._quick("retry", lang))

    def _compose_timeout(self, draft: TurnDraft, lang: str) -> Reply:
        lines = [self._t("timed_out", lang)]
        completed = [r for r in draft.tool_results if r.succeeded]
        if completed:
            lines.append(self._t("completed_steps", lang))
            lines += [self._step_line(r, lang) for r in completed]
            if any(r.operation == "book" for r in completed):
                lines.append(self._t("booking_unpaid", lang))
        else:
            lines.append(self._t("no_steps_completed", lang))
        return Reply(text="\n".join(lines), quick_replies=self._quick("retry", lang))
