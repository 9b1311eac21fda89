from typing import BinaryIO

from anyio.to_thread import run_sync

import cloudinary
import cloudinary.uploader

from sgms.core.config import cloudinary_logger
from sgms.core.exceptions.types import ExternalServiceException


class CloudinaryService:
    @classmethod
    def init(
        cls,
        cloud_name: str,
        api_key: str,
        api_secret: str,
    ) -> None:
        """
        Configure the Cloudinary SDK with the given credentials.

        Parameters
        ----------
        cloud_name : str
            The Cloudinary cloud name.
        api_key : str
            The Cloudinary API key.
        api_secret : str
            The Cloudinary API secret.
        """
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )

    @classmethod
    async def upload_file(
        cls, file: BinaryIO, folder: str | None = None, **kwargs
    ) -> tuple[str, str]:
        """
        Upload a file to Cloudinary.

        The blocking SDK call runs in a worker thread.

        Parameters
        ----------
        file : BinaryIO
            Readable file object positioned at the start of the content.
        folder : str | None
            Target folder.
        **kwargs
            Forwarded to ``cloudinary.uploader.upload`` (e.g. transformation).

        Returns
        -------
        tuple[str, str]
            ``(secure_url, public_id)`` of the stored asset.

        Raises
        ------
        ExternalServiceException
            If the upload fails (503).
        """

        def upload() -> dict:
            options = dict(kwargs)
            if folder:
                options["folder"] = folder
            return cloudinary.uploader.upload(file, **options)

        try:
            cloudinary_logger.info(f"Uploading file to Cloudinary folder {folder}.")
            result = await run_sync(upload)
            cloudinary_logger.info(
                f"File uploaded successfully: public_id={result['public_id']}"
            )
            return result["secure_url"], result["public_id"]
        except Exception as e:
            cloudinary_logger.error(f"File upload failed: {str(e)}")
            raise ExternalServiceException(
                f"Please, try again. File upload failed: {str(e)}"
            ) from e

    @classmethod
    async def delete_file(cls, public_id: str) -> None:
        """
        Delete an asset by public id.

        Raises
        ------
        ExternalServiceException
            If the deletion fails (503).
        """

        def destroy() -> None:
            cloudinary.uploader.destroy(public_id)

        try:
            cloudinary_logger.info(
                f"Deleting file with public_id {public_id} from Cloudinary."
            )
            await run_sync(destroy)
            cloudinary_logger.info(
                f"File with public_id {public_id} deleted successfully."
            )
        except Exception as e:
            cloudinary_logger.error(f"File deletion failed: {str(e)}")
            raise ExternalServiceException(
                f"Please, try again. File deletion failed on Cloudinary: {str(e)}"
            ) from e


__all__ = ["CloudinaryService"]
