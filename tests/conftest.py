"""
tests/conftest.py

Shared markup samples and fixtures for the audit test suite.
"""

from __future__ import annotations

import pytest

from app.domain.audit import StoredArtifact
from app.schemas.ticket import Ticket, build_ticket_id
from app.facts.extractor import FactsExtractor
from app.facts.types import FactRecord

DESCRIPTION_TEXT = (
    "Chemise ample en lin lavé, coupe droite, col classique et boutons en nacre. "
    "Fabriquée au Portugal."
)

# Shopify-like page with structured data, a size selector and a purchase action.
SHOPIFY_PDP = f"""
<html lang="fr">
<head>
  <meta property="og:title" content="Chemise en lin | Maison Exemple">
  <script type="application/ld+json">
  {{
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Chemise en lin",
    "description": "{DESCRIPTION_TEXT}",
    "offers": {{
      "@type": "Offer",
      "price": "49.00",
      "priceCurrency": "EUR",
      "availability": "https://schema.org/InStock"
    }}
  }}
  </script>
  <script src="https://cdn.shopify.com/s/files/1/theme.js"></script>
</head>
<body>
  <nav>Soldes 19,99 €</nav>
  <main>
    <h1 class="product__title">Chemise en lin</h1>
    <div class="product__price">49,00 €</div>
    <form action="/cart/add">
      <label for="size">Taille</label>
      <select id="size" name="options[Taille]">
        <option>S</option><option>M</option>
      </select>
      <button type="submit" name="add">Ajouter au panier</button>
    </form>
    <div class="product__description">{DESCRIPTION_TEXT}</div>
  </main>
</body>
</html>
"""

# No structured data: every field resolves through selectors or text.
PLAIN_PDP = """
<html>
<body>
  <main>
    <nav>Sale 19,99 €</nav>
    <h1>Canvas Tote</h1>
    <p>Only 24,90 € today</p>
    <fieldset class="product-form__input"><legend>Size</legend><input type="radio" name="s"></fieldset>
    <fieldset class="product-form__input"><legend>Color</legend><input type="radio" name="c"></fieldset>
    <button class="btn--add-to-cart">Add to cart</button>
    <p>Rupture de stock</p>
  </main>
</body>
</html>
"""

# A page with nothing a shopper could act on.
EMPTY_PAGE = "<html><body><div>Loading…</div></body></html>"


@pytest.fixture()
def shopify_markup() -> str:
    return SHOPIFY_PDP


@pytest.fixture()
def plain_markup() -> str:
    return PLAIN_PDP


@pytest.fixture()
def empty_markup() -> str:
    return EMPTY_PAGE


@pytest.fixture()
def extractor() -> FactsExtractor:
    return FactsExtractor()


@pytest.fixture()
def shopify_facts(extractor: FactsExtractor) -> FactRecord:
    return extractor.extract(SHOPIFY_PDP, lcp_ms=1800)


@pytest.fixture()
def plain_facts(extractor: FactsExtractor) -> FactRecord:
    return extractor.extract(PLAIN_PDP)


def make_artifact(viewport: str, kind: str, *, cached: bool = False) -> StoredArtifact:
    suffix = {"screenshot": "png", "html": "html", "csv": "csv"}[kind]
    path = f"snap_0123456789abcdef/{viewport}/{kind}.{suffix}"
    return StoredArtifact(
        viewport=viewport,
        kind=kind,
        path=path,
        public_url=f"https://cdn.example.com/{path}",
        size=128,
        cached=cached,
    )


@pytest.fixture()
def artifact_factory():
    return make_artifact


@pytest.fixture()
def full_artifacts() -> list[StoredArtifact]:
    return [
        make_artifact("mobile", "screenshot"),
        make_artifact("mobile", "html"),
        make_artifact("desktop", "screenshot"),
        make_artifact("desktop", "html"),
    ]


MOBILE_FOLD_ID = "E_page_a_mobile_screenshot_above_fold_01"


def make_ticket(
    signal: str = "PRICE_HIDDEN",
    *,
    category: str = "offer_clarity",
    impact: str = "high",
    effort: str = "s",
    risk: str = "low",
    confidence: str = "high",
    quick_win: bool = True,
    seq: int = 1,
    **overrides,
) -> Ticket:
    payload = {
        "ticket_id": build_ticket_id("solo", category, signal, seq=seq),
        "mode": "solo",
        "title": f"Fix {signal.lower()}",
        "impact": impact,
        "effort": effort,
        "risk": risk,
        "confidence": confidence,
        "category": category,
        "why": "Shoppers cannot act on what they cannot see.",
        "evidence_refs": [MOBILE_FOLD_ID],
        "how_to": ["Locate the block", "Move it above the fold", "Check on mobile"],
        "validation": ["Visible without scrolling on a 390px viewport"],
        "quick_win": quick_win,
        "owner": "cro",
        "notes": "",
    }
    payload.update(overrides)
    return Ticket(**payload)


@pytest.fixture()
def ticket_factory():
    return make_ticket
