import structlog
from fastapi import APIRouter, Depends, Form, Query, Request

from mechanicbd.api import bookings as bookings_api
from mechanicbd.api import reviews as reviews_api
from mechanicbd.api import services as services_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.gate import require_roles
from mechanicbd.auth.session import SessionStore
from mechanicbd.config import settings
from mechanicbd.dependencies import get_api, get_session
from mechanicbd.metrics import SEARCH_FALLBACKS
from mechanicbd.schemas.booking import Booking
from mechanicbd.schemas.review import Review
from mechanicbd.schemas.service import CATEGORY_OPTIONS, ServicePage
from mechanicbd.schemas.user import UserRole
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.services.review_eligibility import eligible_bookings
from mechanicbd.services.search import (
    AVAILABILITY_OPTIONS,
    PRICE_TYPE_OPTIONS,
    SORT_OPTIONS,
    SearchFilters,
    sample_page,
)
from mechanicbd.templating import error_message, error_status, redirect, render
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, SUGGESTIONS_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter(prefix="/services")

MIN_SUGGESTION_QUERY = 2


def get_filters(
    q: str = "",
    category: str = "",
    location: str = "",
    min_price: str = Query("", alias="minPrice"),
    max_price: str = Query("", alias="maxPrice"),
    min_rating: str = Query("", alias="minRating"),
    max_rating: str = Query("", alias="maxRating"),
    sort_by: str = Query("relevance", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    price_type: str = Query("", alias="priceType"),
    availability: str = "",
    page: str = "1",
) -> SearchFilters:
    return SearchFilters(
        q=q.strip(), category=category, location=location.strip(),
        min_price=min_price, max_price=max_price, min_rating=min_rating, max_rating=max_rating,
        sort_by=sort_by, sort_order=sort_order, price_type=price_type, availability=availability, page=page,
    )


@router.get("")
async def list_services(
    request: Request,
    filters: SearchFilters = Depends(get_filters),
    api: ApiClient = Depends(get_api),
):
    """Listing page. Unfiltered requests hit the plain listing, anything else the search endpoint."""
    error = None
    try:
        if filters.is_empty:
            result = await services_api.list_services(
                api, {"page": filters.page, "limit": settings.SEARCH_PAGE_SIZE}
            )
        else:
            result = await services_api.search_services(api, filters.to_query_params(settings.SEARCH_PAGE_SIZE))
    except ApiError as exc:
        if settings.is_production:
            result, error = ServicePage(), exc.message
        else:
            SEARCH_FALLBACKS.inc()
            logger.warning("service_search_fallback", error=exc.message)
            result = sample_page()

    return render(request, "catalog/list.html", {
        "page": result,
        "filters": filters,
        "error": error,
        "categories": CATEGORY_OPTIONS,
        "sort_options": SORT_OPTIONS,
        "price_type_options": PRICE_TYPE_OPTIONS,
        "availability_options": AVAILABILITY_OPTIONS,
    })


@router.get("/suggestions")
@limiter.limit(SUGGESTIONS_RATE_LIMIT)
async def suggestions(request: Request, q: str = "", api: ApiClient = Depends(get_api)):
    query = q.strip()
    if len(query) < MIN_SUGGESTION_QUERY:
        return {"suggestions": []}
    try:
        items = await services_api.get_suggestions(api, query, settings.SUGGESTIONS_LIMIT)
    except ApiError as exc:
        logger.info("suggestions_unavailable", error=exc.message)
        return {"suggestions": []}
    return {"suggestions": [item.model_dump() for item in items]}


@router.get("/add")
async def add_service_page(
    request: Request,
    session: SessionStore = Depends(require_roles(UserRole.MECHANIC, UserRole.ADMIN)),
):
    return render(request, "catalog/add.html", {"form": {}, "categories": CATEGORY_OPTIONS})


@router.post("/add")
@limiter.limit(FORM_RATE_LIMIT)
async def add_service(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    base_price: str = Form("", alias="basePrice"),
    service_area: str = Form("", alias="serviceArea"),
    session: SessionStore = Depends(require_roles(UserRole.MECHANIC, UserRole.ADMIN)),
    api: ApiClient = Depends(get_api),
):
    form = {"title": title, "description": description, "category": category,
            "basePrice": base_price, "serviceArea": service_area}
    try:
        body = forms.service_form(title, description, category, base_price, service_area)
        service = await services_api.create_service(api, body)
    except (FormValidationError, ApiError) as exc:
        return render(request, "catalog/add.html", {
            "form": form, "categories": CATEGORY_OPTIONS, "error": error_message(exc),
        }, status_code=error_status(exc))

    logger.info("service_created", service_id=service.id, user_id=session.user.id)
    flash(request, "Service added successfully.")
    return redirect("/services/mine" if session.role == UserRole.MECHANIC else "/services")


@router.get("/mine")
async def my_services(
    request: Request,
    session: SessionStore = Depends(require_roles(UserRole.MECHANIC)),
    api: ApiClient = Depends(get_api),
):
    try:
        services = await services_api.my_services(api)
    except ApiError as exc:
        return render(request, "error.html", {"title": "Could not load your services", "message": exc.message,
                                              "back_url": "/dashboard/mechanic"}, status_code=error_status(exc))
    return render(request, "catalog/mine.html", {"services": services})


async def _review_state(
    api: ApiClient, session: SessionStore, service_id: str
) -> tuple[list[Review], list[Booking]]:
    """Reviews for the service and, for customers, their bookings still open for review."""
    reviews = await reviews_api.reviews_for_service(api, service_id)
    if session.role != UserRole.CUSTOMER:
        return reviews, []
    bookings = await bookings_api.list_bookings(api, {"status": "completed"})
    return reviews, eligible_bookings(bookings, reviews, service_id)


@router.get("/{service_id}")
async def service_detail(
    request: Request,
    service_id: str,
    api: ApiClient = Depends(get_api),
    session: SessionStore = Depends(get_session),
):
    try:
        service = await services_api.get_service(api, service_id)
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Service unavailable",
            "message": exc.message if exc.status_code != 404 else "Service not found.",
            "back_url": "/services",
        }, status_code=404 if exc.status_code == 404 else error_status(exc))

    reviews_error = None
    try:
        reviews, reviewable = await _review_state(api, session, service_id)
    except ApiError as exc:
        reviews, reviewable, reviews_error = [], [], exc.message

    return render(request, "catalog/detail.html", {
        "service": service,
        "reviews": reviews,
        "reviewable_bookings": reviewable,
        "reviews_error": reviews_error,
    })


@router.post("/{service_id}/reviews")
@limiter.limit(FORM_RATE_LIMIT)
async def submit_review(
    request: Request,
    service_id: str,
    booking_id: str = Form("", alias="bookingId"),
    rating: str = Form(""),
    comment: str = Form(""),
    session: SessionStore = Depends(require_roles(UserRole.CUSTOMER)),
    api: ApiClient = Depends(get_api),
):
    """Eligibility is recomputed here; a stale form cannot review a covered booking."""
    try:
        body = forms.review_form(booking_id, service_id, rating, comment)
        _, reviewable = await _review_state(api, session, service_id)
        if body.booking_id not in {b.id for b in reviewable}:
            raise FormValidationError("This booking cannot be reviewed.", field="bookingId")
        review = await reviews_api.create_review(api, body)
    except (FormValidationError, ApiError) as exc:
        flash(request, error_message(exc), "error")
        return redirect(f"/services/{service_id}")

    logger.info("review_created", review_id=review.id, service_id=service_id, user_id=session.user.id)
    flash(request, "Thank you for your review!")
    return redirect(f"/services/{service_id}")
