#!/usr/bin/env python3
"""
Smoke checks for the MedConnect API endpoints.
Run the API server first: python -m medconnect.api.app
Then run this with a patient key and a verified doctor's key:
    python scripts/smoke_api.py
"""

import json

import requests

BASE_URL = "http://localhost:8000"


def _show(title, response):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)
    print(f"Status Code: {response.status_code}")
    try:
        print(f"Response: {json.dumps(response.json(), indent=2)}")
    except ValueError:
        print(f"Response: {response.text[:500]}")


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def check_health():
    response = requests.get(f"{BASE_URL}/health")
    _show("Health Check", response)
    return response.status_code == 200


def check_login_invalid():
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": "invalid-key-123"})
    _show("Login with Invalid Credentials", response)
    return response.status_code == 401


def login(api_key, title):
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": api_key})
    _show(title, response)
    if response.status_code == 200:
        data = response.json()
        return data["token"], data["user"]
    return None, None


def check_connections_without_token():
    response = requests.get(f"{BASE_URL}/api/connections")
    _show("Connections Without Token", response)
    return response.status_code == 401


def request_connection(token, doctor_id):
    response = requests.post(f"{BASE_URL}/api/connections/request",
                             headers=_auth(token), json={"doctor_id": doctor_id})
    _show("Request Connection", response)
    if response.status_code == 201:
        return response.json()["data"]["connection_id"]
    # Pair already connected or pending: reuse the existing row.
    status = requests.get(f"{BASE_URL}/api/connections/status/{doctor_id}", headers=_auth(token))
    data = status.json().get("data") or {}
    return data.get("connection_id")


def put_transition(token, connection_id, action):
    response = requests.put(f"{BASE_URL}/api/connections/{connection_id}/{action}", headers=_auth(token))
    _show(f"{action.capitalize()} Connection", response)
    return response.status_code == 200


def shared_records(token, connection_id):
    response = requests.get(f"{BASE_URL}/api/connections/{connection_id}/shared-records",
                            headers=_auth(token))
    _show("Shared Records", response)
    return response


def share_all(token, connection_id):
    response = requests.post(f"{BASE_URL}/api/connections/{connection_id}/share-all",
                             headers=_auth(token))
    _show("Share All Records", response)
    return response.status_code == 200


def logout(token):
    response = requests.post(f"{BASE_URL}/api/auth/logout", headers=_auth(token))
    _show("Logout", response)
    return response.status_code == 200


def main():
    print("=" * 50)
    print("MedConnect API Smoke Checks")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running!")
    print()

    patient_key = input("Enter a PATIENT API key: ").strip()
    doctor_key = input("Enter a verified DOCTOR API key: ").strip()
    if not patient_key or not doctor_key:
        print("ERROR: both API keys are required")
        return

    results = {}
    try:
        results["Health Check"] = check_health()
        results["Login Invalid"] = check_login_invalid()
        results["No Token"] = check_connections_without_token()

        patient_token, _ = login(patient_key, "Patient Login")
        doctor_token, doctor = login(doctor_key, "Doctor Login")
        results["Logins"] = bool(patient_token and doctor_token)
        if not results["Logins"]:
            print("\nERROR: Could not login. Remaining checks skipped.")
        else:
            connection_id = request_connection(patient_token, doctor["doctor_id"])
            results["Request"] = connection_id is not None
            put_transition(doctor_token, connection_id, "approve")
            results["Share All"] = share_all(patient_token, connection_id)
            response = shared_records(doctor_token, connection_id)
            results["Doctor Sees Records"] = (
                response.status_code == 200 and response.json()["data"]["mode"] == "all"
            )
            results["Revoke"] = put_transition(doctor_token, connection_id, "revoke")
            results["Hidden After Revoke"] = shared_records(doctor_token, connection_id).status_code == 403
            results["Logout"] = logout(patient_token) and logout(doctor_token)
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, ok in results.items():
        print(f"{'✓ PASS' if ok else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
