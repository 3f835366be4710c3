import structlog
from fastapi import APIRouter, Form, Request

from mechanicbd.api.errors import FormValidationError
from mechanicbd.pages.content import FAQ_CATEGORIES, FAQS
from mechanicbd.services import forms
from mechanicbd.services.accordion import FaqAccordion
from mechanicbd.templating import render
from mechanicbd.utils.log_mask import mask_email
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()

CONTACT_SUCCESS_MESSAGE = "Thank you for your message! We'll get back to you soon."


@router.get("/")
async def home(request: Request):
    return render(request, "pages/home.html")


@router.get("/about")
async def about(request: Request):
    return render(request, "pages/about.html")


@router.get("/privacy")
async def privacy(request: Request):
    return render(request, "pages/privacy.html")


@router.get("/terms")
async def terms(request: Request):
    return render(request, "pages/terms.html")


@router.get("/faq")
async def faq(request: Request, open: str = ""):
    """Accordion state lives in ``?open=``; each question links to its toggled state."""
    accordion = FaqAccordion.from_query(len(FAQS), open)
    return render(request, "pages/faq.html", {
        "faqs": FAQS,
        "categories": FAQ_CATEGORIES,
        "accordion": accordion,
    })


@router.get("/contact")
async def contact_page(request: Request):
    return render(request, "pages/contact.html", {"form": {}})


@router.post("/contact")
@limiter.limit(FORM_RATE_LIMIT)
async def contact(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    subject: str = Form(""),
    message: str = Form(""),
):
    form = {"name": name, "email": email, "phone": phone, "subject": subject, "message": message}
    try:
        forms.contact_form(name, email, message)
    except FormValidationError as exc:
        return render(request, "pages/contact.html", {"form": form, "error": exc.message}, status_code=400)

    # TODO: forward to the support inbox once the API exposes a contact endpoint
    logger.info("contact_message_received", email=mask_email(email.strip()), subject=subject.strip()[:80])
    return render(request, "pages/contact.html", {"form": {}, "success": CONTACT_SUCCESS_MESSAGE})
