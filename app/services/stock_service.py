"""
Stock service - recipe-based ingredient deduction and restoration.

Given a menu item and a signed quantity, moves the stock of every ingredient
in the item's recipe:

    new_stock = current_stock + per_unit_qty * signed_qty

Negative signed_qty deducts (item sold), positive restores (item removed).
Packaged goods, unknown menu items and items without a recipe have no
stock effect. Each ingredient write is committed on its own and is
best-effort: a failed write is logged and the remaining ingredients are
still adjusted. Stock is allowed to go negative.
"""
import logging
from decimal import Decimal
from typing import Dict, Any, List

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from app.models import MenuItem, Recipe, RecipeItem, Ingredient, RestaurantProfile, AlertNotification
from app.exceptions import InsufficientStockError, NotFoundError
from app.blueprints.metrics import stock_adjustments_total

logger = logging.getLogger(__name__)


def deduct_stock(session, menu_item_id: int, restaurant_id: int, quantity: int, **kwargs) -> List[Dict[str, Any]]:
    """Deduct recipe ingredients for `quantity` units sold."""
    return adjust_stock(session, menu_item_id, restaurant_id, -abs(int(quantity)), **kwargs)


def restore_stock(session, menu_item_id: int, restaurant_id: int, quantity: int, **kwargs) -> List[Dict[str, Any]]:
    """Give back recipe ingredients for `quantity` units no longer sold."""
    return adjust_stock(session, menu_item_id, restaurant_id, abs(int(quantity)), **kwargs)


def adjust_stock(
    session,
    menu_item_id: int,
    restaurant_id: int,
    signed_qty: int,
    require_sufficient: bool = False,
    table_number: str = None
) -> List[Dict[str, Any]]:
    """
    Apply a signed quantity of a menu item to its recipe ingredients (restaurant-scoped).

    Args:
        session: SQLAlchemy session
        menu_item_id: Menu item whose recipe drives the adjustment
        restaurant_id: Restaurant ID (REQUIRED for multi-tenant enforcement)
        signed_qty: Negative deducts, positive restores
        require_sufficient: Refuse a deduction that would take any ingredient
            below zero (manual deductions only; order flows never block)
        table_number: Context for low-stock alerts

    Returns:
        list of applied adjustments:
        {'ingredient_id', 'ingredient_name', 'old_stock', 'new_stock', 'delta'}

    Raises:
        InsufficientStockError: require_sufficient and stock is short
        NotFoundError: require_sufficient and a recipe ingredient is missing
    """
    if not menu_item_id or not signed_qty:
        return []

    # Step 1: Menu item must exist and not be a packaged good
    menu_item = session.query(MenuItem).filter(
        MenuItem.id == menu_item_id,
        MenuItem.restaurant_id == restaurant_id
    ).first()

    if not menu_item:
        logger.debug(f"[STOCK] Menu item {menu_item_id} not found, no stock effect")
        return []

    if menu_item.is_packaged_good:
        logger.debug(f"[STOCK] Menu item {menu_item_id} is a packaged good, no stock effect")
        return []

    # Step 2: Recipe
    recipe = session.query(Recipe).filter(
        Recipe.menu_item_id == menu_item_id,
        Recipe.restaurant_id == restaurant_id
    ).first()

    if not recipe or not recipe.items:
        logger.debug(f"[STOCK] No recipe for menu item {menu_item_id}, no stock effect")
        return []

    recipe_items: List[RecipeItem] = list(recipe.items)

    # Step 3: Read all ingredients in one query
    ingredient_ids = [ri.ingredient_id for ri in recipe_items]
    ingredients = session.query(Ingredient).filter(
        Ingredient.id.in_(ingredient_ids),
        Ingredient.restaurant_id == restaurant_id
    ).all()
    ingredients_by_id = {ing.id: ing for ing in ingredients}

    qty = Decimal(int(signed_qty))

    if require_sufficient and qty < 0:
        _check_sufficient(recipe_items, ingredients_by_id, qty)

    direction = 'deduct' if qty < 0 else 'restore'
    alerts_enabled = qty < 0 and _inventory_alerts_enabled(session, restaurant_id)

    # Step 4: Write each ingredient independently
    applied = []
    for recipe_item in recipe_items:
        ingredient = ingredients_by_id.get(recipe_item.ingredient_id)
        if ingredient is None:
            logger.warning(
                f"[STOCK] Ingredient {recipe_item.ingredient_id} of menu item {menu_item_id} "
                f"not found for restaurant {restaurant_id}, skipped"
            )
            stock_adjustments_total.labels(direction=direction, outcome='skipped').inc()
            continue

        ingredient_id = ingredient.id
        ingredient_name = ingredient.name
        threshold = ingredient.reorder_threshold
        old_stock = Decimal(str(ingredient.current_stock or 0))
        delta = Decimal(str(recipe_item.quantity)) * qty
        new_stock = old_stock + delta

        try:
            ingredient.current_stock = new_stock
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                f"[STOCK] Failed to {direction} ingredient {ingredient_id} "
                f"({ingredient_name}) by {delta}: {e}"
            )
            stock_adjustments_total.labels(direction=direction, outcome='failed').inc()
            continue

        stock_adjustments_total.labels(direction=direction, outcome='applied').inc()

        if new_stock < 0:
            logger.warning(f"[STOCK] {ingredient_name} is negative ({new_stock})")

        applied.append({
            'ingredient_id': ingredient_id,
            'ingredient_name': ingredient_name,
            'old_stock': old_stock,
            'new_stock': new_stock,
            'delta': delta,
        })

        if alerts_enabled and threshold is not None and new_stock < Decimal(str(threshold)):
            _raise_low_stock_alert(session, restaurant_id, ingredient_name, new_stock, table_number)

    return applied


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _check_sufficient(recipe_items, ingredients_by_id, qty: Decimal) -> None:
    """Validate every ingredient before any write."""
    for recipe_item in recipe_items:
        ingredient = ingredients_by_id.get(recipe_item.ingredient_id)
        if ingredient is None:
            raise NotFoundError(f'Ingredient not found: {recipe_item.ingredient_id}')

        required = Decimal(str(recipe_item.quantity)) * abs(qty)
        available = Decimal(str(ingredient.current_stock or 0))
        if available < required:
            raise InsufficientStockError(ingredient.name, required, available)


def _inventory_alerts_enabled(session, restaurant_id: int) -> bool:
    """Low-stock alerts need both the global switch and the restaurant feature."""
    if has_app_context() and not current_app.config.get('LOW_STOCK_ALERTS_ENABLED', True):
        return False

    profile = session.query(RestaurantProfile).filter(
        RestaurantProfile.restaurant_id == restaurant_id
    ).first()
    return bool(profile and profile.features_inventory_enabled)


def _raise_low_stock_alert(session, restaurant_id: int, ingredient_name: str, new_stock: Decimal, table_number) -> None:
    """Insert a pending low-stock alert (best-effort)."""
    try:
        session.add(AlertNotification(
            restaurant_id=restaurant_id,
            table_number=str(table_number) if table_number else None,
            message=f'{ingredient_name} ({new_stock.normalize():f})',
            status='pending'
        ))
        session.commit()
        logger.info(f"[STOCK] Low-stock alert raised for {ingredient_name} ({new_stock})")
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[STOCK] Low-stock alert insert failed for {ingredient_name}: {e}")
