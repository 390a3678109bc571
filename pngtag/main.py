from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pngtag.routers.tags import router as tags_router
from pngtag.services.errors import (
	CorruptImageDataError,
	InvalidEncodingError,
	KeyTooLongError,
	MissingFileError,
	MissingHeaderError,
	NotAPngError,
	TagError,
	UnsupportedColorTypeError,
)


def status_for(exc: TagError) -> int:
	if isinstance(exc, MissingFileError):
		return 404
	if isinstance(exc, NotAPngError):
		return 415
	if isinstance(exc, (MissingHeaderError, CorruptImageDataError)):
		return 400
	if isinstance(exc, (KeyTooLongError, InvalidEncodingError, UnsupportedColorTypeError)):
		return 422
	return 500


async def tag_error_handler(request: Request, exc: TagError) -> JSONResponse:
	return JSONResponse(status_code=status_for(exc), content={"error": exc.code, "message": exc.message})


# The API rewrites any PNG the server process can write and has no
# authentication: serve it on loopback only and accept browser calls from
# local pages only.
LOCAL_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?"


def create_app() -> FastAPI:
	app = FastAPI(title="pngtag - PNG text metadata API", version="0.1.0")

	# CORS (local pages only)
	app.add_middleware(
		CORSMiddleware,
		allow_origin_regex=LOCAL_ORIGIN_REGEX,
		allow_credentials=False,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	app.add_exception_handler(TagError, tag_error_handler)

	# Routers
	app.include_router(tags_router)

	return app


app = create_app()


if __name__ == "__main__":
	# Local dev server: uvicorn pngtag.main:app --reload
	import uvicorn

	uvicorn.run("pngtag.main:app", host="127.0.0.1", port=8000, reload=True)
