from .product import Category, Product
from .warehouse import Warehouse, Location
