# finance_tracker/auth.py

import logging

from fastapi import APIRouter, Depends, Form, Request
from passlib.hash import bcrypt
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.responses import RedirectResponse

from . import config, crud
from .database import get_db
from .errors import AdminRequired, LoginRequired
from .models import Profile
from .schemas import ProfileIn, first_error
from .templating import templates

logger = logging.getLogger(__name__)

router = APIRouter()

hasher = bcrypt.using(rounds=config.BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return hasher.verify(password, password_hash)


# Dependency to get the logged-in profile
def get_current_user(request: Request, db: Session = Depends(get_db)) -> Profile:
    user_id = request.session.get("user_id")
    user = db.get(Profile, user_id) if user_id else None
    if user is None:
        request.session.clear()
        raise LoginRequired()
    return user


def get_admin_user(user: Profile = Depends(get_current_user)) -> Profile:
    if not user.is_admin:
        # Non-admins are bounced back to their dashboard
        raise AdminRequired()
    return user


# Register (Signup)
@router.get("/register")
def register_form(request: Request):
    return templates.TemplateResponse(request, "register.html", {})


@router.post("/register")
def register(
    request: Request,
    full_name: str = Form(""),
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    def fail(message):
        return templates.TemplateResponse(
            request,
            "register.html",
            {"error": message, "email": email, "full_name": full_name},
            status_code=400,
        )

    try:
        data = ProfileIn(email=email, password=password, full_name=full_name or None)
    except ValidationError as exc:
        return fail(first_error(exc))

    if crud.get_profile_by_email(db, data.email):
        return fail("Email already registered.")

    crud.create_profile(db, data, hash_password(data.password))
    return RedirectResponse("/login", status_code=302)


@router.get("/login")
def login_form(request: Request):
    return templates.TemplateResponse(request, "login.html", {})


@router.post("/login")
def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = crud.get_profile_by_email(db, email.strip().lower())
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email)
        return templates.TemplateResponse(
            request,
            "login.html",
            {"error": "Invalid email or password.", "email": email},
            status_code=400,
        )

    request.session["user_id"] = user.id
    request.session["name"] = user.display_name
    logger.info("User %s logged in", user.id)
    return RedirectResponse("/dashboard", status_code=302)


# Logout
@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse("/login", status_code=302)
