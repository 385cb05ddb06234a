"""Recipe models."""
from sqlalchemy import Column, BigInteger, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database import Base, BigIntPK


class Recipe(Base):
    """Recipe - ingredients consumed by one unit of a menu item."""

    __tablename__ = 'recipe'
    __table_args__ = (
        UniqueConstraint('restaurant_id', 'menu_item_id', name='uq_recipe_menu_item'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    restaurant_id = Column(BigInteger, ForeignKey('restaurant.id'), nullable=False)
    menu_item_id = Column(BigInteger, ForeignKey('menu_item.id'), nullable=False)

    # Relationships
    menu_item = relationship('MenuItem', back_populates='recipe')
    items = relationship('RecipeItem', back_populates='recipe', cascade='all, delete-orphan',
                         order_by='RecipeItem.id')

    def __repr__(self):
        return f"<Recipe(id={self.id}, menu_item_id={self.menu_item_id})>"


class RecipeItem(Base):
    """Recipe line: quantity of one ingredient per unit sold."""

    __tablename__ = 'recipe_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    recipe_id = Column(BigInteger, ForeignKey('recipe.id'), nullable=False)
    ingredient_id = Column(BigInteger, ForeignKey('ingredient.id'), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)

    # Relationships
    recipe = relationship('Recipe', back_populates='items')
    ingredient = relationship('Ingredient')

    def __repr__(self):
        return f"<RecipeItem(recipe_id={self.recipe_id}, ingredient_id={self.ingredient_id}, qty={self.quantity})>"
