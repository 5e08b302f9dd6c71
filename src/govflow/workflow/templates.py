# src/govflow/workflow/templates.py
"""
File-kind classification, per-kind generation prompts and the built-in
fallback content used when generation for a file fails.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from ..models import ArtifactType


class FileKind(str, Enum):
    CUCUMBER_FEATURE = "cucumber_feature"
    STEP_DEFINITIONS = "step_definitions"
    PLAYWRIGHT_TEST = "playwright_test"
    PAGE_OBJECT = "page_object"
    GENERIC = "generic"

    @property
    def artifact_type(self) -> Optional[ArtifactType]:
        return _ARTIFACTS.get(self)


_ARTIFACTS = {
    FileKind.CUCUMBER_FEATURE: ArtifactType.FEATURE,
    FileKind.STEP_DEFINITIONS: ArtifactType.STEP_DEFINITION,
    FileKind.PLAYWRIGHT_TEST: ArtifactType.TEST,
    FileKind.PAGE_OBJECT: ArtifactType.PAGE_OBJECT,
}


def classify(path: str) -> FileKind:
    """Pick the file kind from the path's suffix and directory segments."""
    normalized = path.replace("\\", "/")
    parts = PurePosixPath(normalized).parts[:-1]
    if normalized.endswith(".feature"):
        return FileKind.CUCUMBER_FEATURE
    if "steps" in parts and normalized.endswith(".ts"):
        return FileKind.STEP_DEFINITIONS
    if normalized.endswith(".spec.ts"):
        return FileKind.PLAYWRIGHT_TEST
    if "pages" in parts and normalized.endswith(".ts"):
        return FileKind.PAGE_OBJECT
    return FileKind.GENERIC


# =============================================================================
# PROMPTS
# =============================================================================

_BASE_PROMPT = """Generate {label} for: {description}
File path: {path}

Requirements:
- Follow the existing patterns of a Playwright + Cucumber TypeScript project
- Keep selectors in page objects, never in tests
- Read credentials and secrets from environment variables, never inline them
- Include clear assertions

Generate only the file content, no explanations."""

_KIND_PROMPTS = {
    FileKind.CUCUMBER_FEATURE: (
        "a Cucumber feature file",
        """
Write Gherkin with a Feature description (As a / I want / So that), a
Background when scenarios share setup, and scenarios for the happy path and
for error cases.""",
    ),
    FileKind.STEP_DEFINITIONS: (
        "TypeScript step definitions",
        """
Use Given/When/Then from @cucumber/cucumber, expect from @playwright/test,
async functions and the page objects under src/pages.""",
    ),
    FileKind.PLAYWRIGHT_TEST: (
        "a Playwright test file",
        """
Use test.describe and test from @playwright/test, construct page objects in
test.beforeEach and assert with expect.""",
    ),
    FileKind.PAGE_OBJECT: (
        "a Playwright page object class",
        """
Extend BasePage from ../base/BasePage, keep locators as private readonly
fields and expose user actions as async methods.""",
    ),
    FileKind.GENERIC: ("TypeScript code", ""),
}


def build_file_prompt(kind: FileKind, path: str, description: str) -> str:
    label, extra = _KIND_PROMPTS[kind]
    return _BASE_PROMPT.format(label=label, description=description, path=path) + extra


# =============================================================================
# FALLBACK CONTENT
# =============================================================================

CART_FEATURE = """Feature: Shopping Cart
  As a user
  I want to add items to my cart
  So that I can purchase them

  Background:
    Given I am logged in to the application

  Scenario: Add item to cart
    When I add an item to the cart
    Then the item should be in my cart
    And the cart count should increase

  Scenario: Remove item from cart
    Given I have items in my cart
    When I remove an item from the cart
    Then the item should be removed from my cart
    And the cart count should decrease
"""

CART_STEPS = """import { Given, When, Then } from '@cucumber/cucumber';
import { expect } from '@playwright/test';
import { CartPage } from '../../src/pages/shop/CartPage';

let cartPage: CartPage;

Given('I am logged in to the application', async function () {
  await this.loginPage.loginWithDefaultUser();
});

Given('I have items in my cart', async function () {
  cartPage = new CartPage(this.page);
  await cartPage.addItemToCart();
});

When('I add an item to the cart', async function () {
  cartPage = new CartPage(this.page);
  await cartPage.addItemToCart();
});

When('I remove an item from the cart', async function () {
  await cartPage.removeItemFromCart();
});

Then('the item should be in my cart', async function () {
  await cartPage.verifyItemInCart();
});

Then('the item should be removed from my cart', async function () {
  expect(await cartPage.getCartCount()).toBe(0);
});

Then('the cart count should increase', async function () {
  expect(await cartPage.getCartCount()).toBeGreaterThan(0);
});

Then('the cart count should decrease', async function () {
  expect(await cartPage.getCartCount()).toBe(0);
});
"""

CART_SPEC = """import { test, expect } from '@playwright/test';
import { CartPage } from '../src/pages/shop/CartPage';

test.describe('Cart Functionality', () => {
  let cartPage: CartPage;

  test.beforeEach(async ({ page }) => {
    cartPage = new CartPage(page);
  });

  test('should add item to cart', async () => {
    await cartPage.addItemToCart();
    expect(await cartPage.getCartCount()).toBeGreaterThan(0);
  });

  test('should remove item from cart', async () => {
    await cartPage.addItemToCart();
    const initialCount = await cartPage.getCartCount();
    await cartPage.removeItemFromCart();
    expect(await cartPage.getCartCount()).toBeLessThan(initialCount);
  });
});
"""

CART_PAGE = """import { Page, expect } from '@playwright/test';
import { BasePage } from '../base/BasePage';

export class CartPage extends BasePage {
  private readonly addToCartButton = '[data-test="add-to-cart"]';
  private readonly removeFromCartButton = '[data-test="remove-from-cart"]';
  private readonly cartCount = '.shopping_cart_badge';
  private readonly cartItems = '.cart_item';

  constructor(page: Page) {
    super(page);
  }

  async addItemToCart(): Promise<void> {
    await this.page.click(this.addToCartButton);
  }

  async removeItemFromCart(): Promise<void> {
    await this.page.click(this.removeFromCartButton);
  }

  async getCartCount(): Promise<number> {
    const countText = await this.page.textContent(this.cartCount);
    return parseInt(countText || '0', 10);
  }

  async verifyItemInCart(): Promise<void> {
    await expect(this.page.locator(this.cartItems).first()).toBeVisible();
  }
}
"""


def fallback_content(kind: FileKind, path: str, description: str = "") -> str:
    """Built-in content for ``kind``. Never empty."""
    if kind is FileKind.CUCUMBER_FEATURE:
        return CART_FEATURE
    if kind is FileKind.STEP_DEFINITIONS:
        return CART_STEPS
    if kind is FileKind.PLAYWRIGHT_TEST:
        return CART_SPEC
    if kind is FileKind.PAGE_OBJECT:
        return CART_PAGE
    summary = description or "generated file"
    return f"// {path}\n// Placeholder for: {summary}\nexport {{}};\n"
