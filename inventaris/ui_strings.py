from __future__ import annotations

from typing import Dict, List


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "request": [
        {
            "key": "pending",
            "label": "Menunggu",
            "description": "Menunggu persetujuan supervisor departemen.",
        },
        {
            "key": "approved_spv",
            "label": "Disetujui SPV",
            "description": "Disetujui supervisor, siap dijadwalkan oleh HRGA.",
        },
        {
            "key": "rejected",
            "label": "Ditolak",
            "description": "Ditolak supervisor dengan alasan tertulis.",
        },
        {
            "key": "scheduled",
            "label": "Dijadwalkan",
            "description": "Masuk batch pengambilan dengan jadwal tertentu.",
        },
        {
            "key": "completed",
            "label": "Selesai",
            "description": "Barang sudah diserahkan dan stok sudah dikurangi.",
        },
    ],
    "batch": [
        {
            "key": "pending",
            "label": "Menunggu HRGA",
            "description": "Batch dibuat dan menunggu keputusan HRGA.",
        },
        {
            "key": "approved",
            "label": "Disetujui HRGA",
            "description": "Batch disetujui, barang dapat diserahkan.",
        },
        {
            "key": "rejected",
            "label": "Ditolak HRGA",
            "description": "Batch ditolak, anggota batch tidak dapat diserahkan.",
        },
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "request_created": "Request berhasil dibuat!",
        "request_approved": "Request berhasil disetujui!",
        "request_rejected": "Request berhasil ditolak.",
        "request_signed": "Tanda tangan berhasil disimpan!",
        "batch_created": "Batch berhasil dibuat!",
        "batch_reviewed": "Keputusan batch berhasil disimpan.",
        "handover_processed": "Serah terima barang berhasil diproses.",
        "incoming_recorded": "Barang masuk berhasil dicatat!",
        "item_saved": "Barang berhasil disimpan.",
        "item_deleted": "Barang berhasil dihapus.",
        "logged_out": "Anda telah keluar.",
    },
    "error": {
        "auth_required": "Autentikasi diperlukan.",
        "auth_invalid_credentials": "Email atau password salah.",
        "auth_missing_credentials": "Masukkan email dan password.",
        "batch_not_found": "Batch tidak ditemukan.",
        "department_not_found": "Departemen tidak ditemukan.",
        "department_required": "Pilih departemen terlebih dahulu.",
        "invalid_membership": "Hanya request berstatus disetujui SPV yang belum terjadwal yang dapat dimasukkan ke batch.",
        "invalid_month": "Bulan harus di antara 1 dan 12.",
        "invalid_state_transition": "Aksi ini tidak diizinkan untuk status request saat ini.",
        "item_in_use": "Barang masih dipakai oleh request dan tidak dapat dihapus.",
        "item_not_found": "Barang tidak ditemukan.",
        "items_required": "Tambahkan minimal satu barang dengan jumlah yang valid.",
        "po_number_duplicate": "PO Number sudah ada. Gunakan PO Number yang berbeda.",
        "po_number_required": "PO Number wajib diisi.",
        "notification_not_found": "Notifikasi tidak ditemukan.",
        "permission_denied": "Anda tidak memiliki izin untuk melakukan aksi ini.",
        "quantity_invalid": "Jumlah barang harus bilangan bulat positif.",
        "rate_limit_exceeded": "Terlalu banyak permintaan. Coba lagi sebentar lagi.",
        "reason_required": "Alasan penolakan wajib diisi.",
        "request_ids_required": "Pilih minimal satu request.",
        "request_not_found": "Request tidak ditemukan.",
        "schedule_required": "Pilih tanggal dan waktu pengambilan.",
        "signature_required": "Tanda tangan wajib diisi.",
        "sku_duplicate": "SKU sudah dipakai barang lain.",
        "stock_invalid": "Stok tidak boleh negatif.",
        "temporarily_unavailable": "Database sedang sibuk. Silakan coba lagi.",
        "unexpected_error": "Terjadi kesalahan. Silakan coba lagi.",
        "validation_error": "Data yang dikirim tidak valid.",
    },
    "notification": {
        "request_created": "Request baru {doc_number} menunggu approval",
        "request_approved": "Request {doc_number} telah disetujui oleh Supervisor",
        "request_ready_to_schedule": "Request {doc_number} siap dijadwalkan",
        "request_rejected": "Request {doc_number} ditolak: {reason}",
        "batch_created": "Batch pengambilan baru dijadwalkan untuk {schedule_date} ({request_count} request)",
        "batch_approved": "Batch pengambilan {schedule_date} disetujui HRGA",
        "batch_rejected": "Batch pengambilan {schedule_date} ditolak HRGA",
        "request_handed_over": "Barang untuk request {doc_number} telah diserahkan",
    },
}


NOTIFICATION_LINKS: Dict[str, str] = {
    "approvals": "/dashboard/approvals",
    "batches": "/dashboard/batches",
    "request_detail": "/dashboard/requests/{request_id}",
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return key


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def notification_message(key: str, **values: object) -> str:
    template = get_message("notification", key)
    try:
        return template.format(**values)
    except (KeyError, IndexError):
        return template


def notification_link(key: str, **values: object) -> str:
    template = NOTIFICATION_LINKS.get(key, "/dashboard")
    return template.format(**values)
