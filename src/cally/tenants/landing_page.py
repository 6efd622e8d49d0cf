"""Landing page content models.

Two shapes are accepted:
- V1 "simple": one template with fixed hero / about / features blocks.
- V2 "composable": ``version: 2`` plus an ordered list of typed sections.

parse_landing_page() validates either shape and returns it normalized.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field

from src.cally.core.schemas import ApiModel

# ── V1: Simple ───────────────────────────────────────────────────────────────


class HeroBlock(ApiModel):
    title: str = ""
    subtitle: str = ""
    button_label: str = "Book a session"
    image_url: str | None = None


class AboutBlock(ApiModel):
    heading: str = "About"
    body: str = ""
    image_url: str | None = None


class FeatureItem(ApiModel):
    title: str
    description: str = ""
    icon: str | None = None


class SimpleLandingPage(ApiModel):
    template: Literal["centered", "split", "minimal"] = "centered"
    hero: HeroBlock = Field(default_factory=HeroBlock)
    about: AboutBlock | None = None
    features: list[FeatureItem] = Field(default_factory=list)
    primary_color: str | None = None


# ── V2: Composable Sections ──────────────────────────────────────────────────


class _Section(ApiModel):
    id: str
    hidden: bool = False


class HeroSection(_Section):
    type: Literal["hero"]
    title: str = ""
    subtitle: str = ""
    button_label: str = "Book a session"
    background_image_url: str | None = None


class AboutSection(_Section):
    type: Literal["about"]
    heading: str = "About"
    body: str = ""
    image_url: str | None = None


class FeaturesSection(_Section):
    type: Literal["features"]
    heading: str = ""
    items: list[FeatureItem] = Field(default_factory=list)


class Testimonial(ApiModel):
    quote: str
    author: str
    role: str | None = None


class TestimonialsSection(_Section):
    type: Literal["testimonials"]
    heading: str = ""
    items: list[Testimonial] = Field(default_factory=list)


class FaqItem(ApiModel):
    question: str
    answer: str


class FaqSection(_Section):
    type: Literal["faq"]
    heading: str = "FAQ"
    items: list[FaqItem] = Field(default_factory=list)


class PricingTier(ApiModel):
    name: str
    price_cents: int = Field(ge=0)
    description: str = ""
    product_id: str | None = None


class PricingSection(_Section):
    type: Literal["pricing"]
    heading: str = ""
    tiers: list[PricingTier] = Field(default_factory=list)


class GallerySection(_Section):
    type: Literal["gallery"]
    heading: str = ""
    image_urls: list[str] = Field(default_factory=list)


class TeamMember(ApiModel):
    name: str
    role: str = ""
    photo_url: str | None = None


class TeamSection(_Section):
    type: Literal["team"]
    heading: str = ""
    members: list[TeamMember] = Field(default_factory=list)


class ContactSection(_Section):
    type: Literal["contact"]
    heading: str = "Contact"
    email: str | None = None
    phone: str | None = None
    address: str | None = None


Section = Annotated[
    Union[
        HeroSection,
        AboutSection,
        FeaturesSection,
        TestimonialsSection,
        FaqSection,
        PricingSection,
        GallerySection,
        TeamSection,
        ContactSection,
    ],
    Field(discriminator="type"),
]


class ComposableLandingPage(ApiModel):
    version: Literal[2]
    sections: list[Section] = Field(default_factory=list)
    primary_color: str | None = None
    font_family: str | None = None


def parse_landing_page(payload: dict) -> ComposableLandingPage | SimpleLandingPage:
    """Validate a landing page body as V2 when it declares ``version: 2``, else V1.

    Raises:
        pydantic.ValidationError: the body matches neither shape.
    """
    if payload.get("version") == 2:
        return ComposableLandingPage.model_validate(payload)
    return SimpleLandingPage.model_validate(payload)


def section_ids_unique(page: ComposableLandingPage) -> bool:
    ids = [section.id for section in page.sections]
    return len(ids) == len(set(ids))
