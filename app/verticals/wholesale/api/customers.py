from __future__ import annotations

from fastapi import APIRouter, Depends

from app.verticals.wholesale.api.deps import get_pricing_service, get_shop_domain
from app.verticals.wholesale.engine.classifier import Classification
from app.verticals.wholesale.engine.pricing_service import BatchResult, PricingService
from app.verticals.wholesale.schemas.customer_input_v1 import (
    AssignTypeInputV1,
    BatchAssignTypeInputV1,
    BatchReviewInputV1,
    ClassifyInputV1,
    LoginStatusInputV1,
    RegistrationTagsInputV1,
    ReviewInputV1,
)
from app.verticals.wholesale.schemas.pricing_output_v1 import (
    BatchTagsResultV1,
    ClassificationV1,
    LoginStatusV1,
    TagsResultV1,
)

router = APIRouter(prefix="/api/wholesale/customers", tags=["wholesale", "customers"])


def _classification(c: Classification) -> ClassificationV1:
    return ClassificationV1(
        approval_state=c.state.value,
        customer_type_id=c.customer_type_id,
        pricing_type_id=c.pricing_type_id,
    )


@router.post("/classify", response_model=ClassificationV1)
def classify(
    payload: ClassifyInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return _classification(svc.classify(shop, payload.tags, payload.customer_id))


@router.post("/review", response_model=TagsResultV1)
def review(
    payload: ReviewInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    tags, result = svc.review(shop, payload.customer_id, payload.tags, payload.action)
    return TagsResultV1(customer_id=payload.customer_id, tags=tags, classification=_classification(result))


@router.post("/assign-type", response_model=TagsResultV1)
def assign_type(
    payload: AssignTypeInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    tags, result = svc.assign_type(shop, payload.customer_id, payload.tags, payload.customer_type_id)
    return TagsResultV1(customer_id=payload.customer_id, tags=tags, classification=_classification(result))



def _batch_result(out: BatchResult, total: int) -> BatchTagsResultV1:
    return BatchTagsResultV1(
        updated=len(out.updated),
        total=total,
        customers=[
            TagsResultV1(customer_id=cid, tags=tags, classification=_classification(c)) for cid, tags, c in out.updated
        ],
        errors=out.errors,
    )


@router.post("/batch-review", response_model=BatchTagsResultV1)
def batch_review(
    payload: BatchReviewInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    customers = [c.model_dump(by_alias=True) for c in payload.customers]
    return _batch_result(svc.review_batch(shop, customers, payload.action), len(customers))


@router.post("/batch-assign-type", response_model=BatchTagsResultV1)
def batch_assign_type(
    payload: BatchAssignTypeInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    customers = [c.model_dump(by_alias=True) for c in payload.customers]
    return _batch_result(svc.assign_type_batch(shop, customers, payload.customer_type_id), len(customers))


@router.post("/registration-tags", response_model=TagsResultV1)
def registration_tags(
    payload: RegistrationTagsInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return TagsResultV1(tags=svc.registration_tags(shop, payload.customer_type_id))


@router.post("/login-status", response_model=LoginStatusV1)
def login_status(payload: LoginStatusInputV1, svc: PricingService = Depends(get_pricing_service)):
    return LoginStatusV1.model_validate(svc.login_status(payload.tags).as_dict())
