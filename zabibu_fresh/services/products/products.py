import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from zabibu_fresh.dependencies.rbac import (
    require_product_write,
    require_product_delete,
    require_permission,
)
from zabibu_fresh.errors import (
    ZabibuError,
    NotFound,
    RemoteFetchFailed,
    Unauthorized,
    ValidationFailed,
    WriteFailed,
    validation_failed_from,
)
from zabibu_fresh.services.products.schemas import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductImage,
)
from zabibu_fresh.services.storage.storage import StorageService
from zabibu_fresh.utils.response_helpers import (
    first_row,
    response_count,
    safe_model_validate,
    safe_model_validate_list,
)

logger = logging.getLogger(__name__)

PRODUCT_TABLE = "Product"
PRODUCT_COLUMNS = (
    "id, title, description, image, price, quantity, location, sellerId, createdAt, "
    "seller:User(id, fullName, phone)"
)


def search_products(products: Iterable[ProductResponse], query: Optional[str]) -> List[ProductResponse]:
    """Case-insensitive match on title, description or location; blank query keeps everything"""
    products = list(products)
    if not query or not query.strip():
        return products

    needle = query.strip().lower()
    return [
        product for product in products
        if any(needle in (value or "").lower() for value in (product.title, product.description, product.location))
    ]


def _as_image(image) -> Optional[ProductImage]:
    if image is None or isinstance(image, ProductImage):
        return image
    return ProductImage(**image)


class ProductService:
    """Catalog browsing for everyone, listing management for sellers"""

    def __init__(self, client, context, storage: StorageService):
        self.client = client
        self.context = context
        self.storage = storage

    async def list_products(self, query: Optional[str] = None) -> List[ProductResponse]:
        """Full catalog, newest first, optionally filtered by a search query"""
        try:
            response = await (
                self.client.table(PRODUCT_TABLE)
                .select(PRODUCT_COLUMNS)
                .order("createdAt", desc=True)
                .execute()
            )
            products = safe_model_validate_list(ProductResponse, response.data)
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching products: {str(e)}")
            raise RemoteFetchFailed("Could not load products", action="load products") from e

        return search_products(products, query)

    @require_permission("products", "write", action="load your products")
    async def list_my_products(self, query: Optional[str] = None) -> List[ProductResponse]:
        """Products owned by the signed-in seller"""
        seller_id = self.context.require_user(action="load your products")
        try:
            response = await (
                self.client.table(PRODUCT_TABLE)
                .select(PRODUCT_COLUMNS)
                .eq("sellerId", seller_id)
                .order("createdAt", desc=True)
                .execute()
            )
            products = safe_model_validate_list(ProductResponse, response.data)
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching products for seller {seller_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load your products", action="load your products") from e

        return search_products(products, query)

    async def count_seller_products(self, seller_id: str) -> int:
        try:
            response = await (
                self.client.table(PRODUCT_TABLE)
                .select("id", count="exact")
                .eq("sellerId", seller_id)
                .execute()
            )
            return response_count(response)
        except Exception as e:
            logger.error(f"Error counting products for seller {seller_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load dashboard", action="load dashboard") from e

    async def get_product(self, product_id: str) -> Optional[ProductResponse]:
        if not product_id:
            return None
        try:
            response = await (
                self.client.table(PRODUCT_TABLE)
                .select(PRODUCT_COLUMNS)
                .eq("id", product_id)
                .limit(1)
                .execute()
            )
            return safe_model_validate(ProductResponse, first_row(response))
        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Error fetching product {product_id}: {str(e)}")
            raise RemoteFetchFailed("Could not load product details", action="load product") from e

    @require_product_write
    async def add_product(self, product_data, image) -> ProductResponse:
        """
        Upload the image, then insert the row. The upload is rolled back if the insert fails.
        """
        seller_id = self.context.require_user(action="add product")
        product_data = self._validated(ProductCreate, product_data, "add product")
        image = _as_image(image)
        if image is None:
            raise ValidationFailed("Please select an image for the product.", action="add product")

        file_path, public_url = await self.storage.upload_image(
            seller_id, image.content, image.content_type, image.filename
        )

        row = product_data.to_row()
        row.update({"image": public_url, "sellerId": seller_id})
        try:
            response = await self.client.table(PRODUCT_TABLE).insert(row).execute()
            created = first_row(response)
            if created is None:
                raise WriteFailed("Product was not returned after insert", action="add product")

            logger.info(f"Seller {seller_id} added product {created.get('id')}")
            return ProductResponse.model_validate(created)

        except BaseException as e:
            await self.storage.remove_image(file_path)
            if isinstance(e, ZabibuError) or not isinstance(e, Exception):
                raise
            logger.error(f"Error creating product: {str(e)}")
            raise WriteFailed(f"Failed to add product: {str(e)}", action="add product") from e

    @require_permission("products", "write", action="update product")
    async def update_product(self, product_id: str, product_data, image=None) -> ProductResponse:
        """Update an own product; a new image replaces the old one"""
        product_data = self._validated(ProductUpdate, product_data, "update product")
        product = await self._get_owned_product(product_id, "update product")
        image = _as_image(image)

        updates = product_data.to_row(exclude_none=True)
        new_path = None
        if image is not None:
            new_path, public_url = await self.storage.upload_image(
                product.owner_id, image.content, image.content_type, image.filename
            )
            updates["image"] = public_url

        if not updates:
            return product

        try:
            response = await (
                self.client.table(PRODUCT_TABLE)
                .update(updates)
                .eq("id", product_id)
                .execute()
            )
            updated = first_row(response)
            if updated is None:
                raise WriteFailed("Product not found or not editable", action="update product")
        except BaseException as e:
            if new_path:
                await self.storage.remove_image(new_path)
            if isinstance(e, ZabibuError) or not isinstance(e, Exception):
                raise
            logger.error(f"Error updating product {product_id}: {str(e)}")
            raise WriteFailed(f"Failed to update product: {str(e)}", action="update product") from e

        if new_path and product.image:
            await self.storage.remove_image(product.image)

        return ProductResponse.model_validate(updated)

    @require_product_delete
    async def delete_product(self, product_id: str) -> bool:
        """Delete an own product and its image; its messages cascade in the database"""
        product = await self._get_owned_product(product_id, "delete product")

        try:
            await self.client.table(PRODUCT_TABLE).delete().eq("id", product_id).execute()
        except Exception as e:
            logger.error(f"Error deleting product {product_id}: {str(e)}")
            raise WriteFailed("Failed to delete product", action="delete product") from e

        if product.image:
            await self.storage.remove_image(product.image)

        logger.info(f"Deleted product {product_id}")
        return True

    async def _get_owned_product(self, product_id: str, action: str) -> ProductResponse:
        user_id = self.context.require_user(action=action)
        product = await self.get_product(product_id)
        if product is None:
            raise NotFound("Product not found", action=action)
        if product.owner_id != user_id:
            logger.warning(f"User {user_id} attempted to {action} {product_id} owned by {product.owner_id}")
            raise Unauthorized("You are not authorized to edit this product.", action=action)
        return product

    @staticmethod
    def _validated(schema, data, action):
        if isinstance(data, schema):
            return data
        try:
            return schema(**data)
        except ValidationError as e:
            raise validation_failed_from(e, action=action)
